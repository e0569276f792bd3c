"""Internal data models for convapi.

All wire-level models use Pydantic v2. Request and Response are value
objects created per call and discarded after classification.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from convapi.errors import RequestError


U = TypeVar("U")


# =============================================================================
# Core HTTP Models
# =============================================================================


class APIMethod(str, Enum):
    """HTTP methods the engine is able to issue."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"


class Request(BaseModel):
    """One concrete HTTP request, ready for a transport.

    Header keys keep the caller's spelling but are matched case-insensitively
    through get_header/set_header. The decorator hook receives this object and
    is the last thing allowed to mutate it before dispatch; it should use
    set_header rather than writing headers directly.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    method: APIMethod = Field(description="HTTP method")
    url: str = Field(description="Absolute URL including any query string")
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    body: bytes | None = Field(default=None, description="Encoded request body")

    def get_header(self, name: str) -> str | None:
        """Return the value of a header, ignoring case, or None.

        If headers was written directly with several spellings of the same
        name, the last one written wins, matching what the transport sends.
        """
        lowered = name.lower()
        found: str | None = None
        for key, value in self.headers.items():
            if key.lower() == lowered:
                found = value
        return found

    def set_header(self, name: str, value: str) -> None:
        """Set a header, replacing every existing key that matches ignoring case."""
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            del self.headers[key]
        self.headers[name] = value


class Response(BaseModel):
    """One buffered HTTP response as seen by the classifier.

    A missing body is represented as b"", never None. status_code is None
    only when the transport produced something without a usable status.
    """

    model_config = ConfigDict(extra="forbid")

    status_code: int | None = Field(description="HTTP status code")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Response headers (lowercase keys)"
    )
    body: bytes = Field(default=b"", description="Raw response body")


class EmptyResponse(BaseModel):
    """Marker for endpoints whose payload the caller does not care about.

    Used as the response type of fire-and-forget calls. Any JSON object
    decodes into it.
    """

    model_config = ConfigDict(extra="ignore")


# =============================================================================
# Call Outcome
# =============================================================================


@dataclass(frozen=True)
class Result(Generic[U]):
    """Explicit success/error pair for callers that prefer not to catch.

    Exactly one of value/error is meaningful: error is None on success.
    """

    value: U | None = None
    error: RequestError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> U:
        """Return the decoded value, raising the stored error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: U) -> Result[U]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: RequestError) -> Result[U]:
        return cls(error=error)
