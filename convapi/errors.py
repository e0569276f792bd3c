"""Error taxonomy for convapi.

RequestError is a closed family: every call that fails produces exactly one
of the concrete subclasses below, never the base class itself. Each variant
carries an ErrorKind tag and __match_args__, so callers can either compare
err.kind or use structural pattern matching:

    match err:
        case ApplicationError(payload):
            ...
        case EmptyErrorResponseError(status_code):
            ...

CodecError, TransportError and ConfigError are boundary errors raised by
the codec, the transports and configuration loading. The engine converts
the first two into RequestError variants; they never reach callers of the
client facades directly.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Tag identifying which RequestError variant was produced."""

    INVALID_REQUEST = "InvalidRequest"
    ENCODING_ERROR = "EncodingError"
    UNDERLYING = "Underlying"
    INVALID_HTTP_RESPONSE = "InvalidHTTPResponse"
    EMPTY_ERROR_RESPONSE = "EmptyErrorResponse"
    APPLICATION_ERROR = "ApplicationError"
    DECODING_ERROR_FAILURE = "DecodingErrorFailure"
    EMPTY_RESPONSE = "EmptyResponse"
    DECODING_FAILURE = "DecodingFailure"


# =============================================================================
# Boundary Errors
# =============================================================================


class CodecError(Exception):
    """Raised when a value cannot be encoded to or decoded from JSON."""


class TransportError(Exception):
    """Raised by a transport when no response could be produced."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Transport failure: {cause}")
        self.cause = cause


class ConfigError(Exception):
    """Raised when configuration loading fails."""


# =============================================================================
# Request Errors
# =============================================================================


class RequestError(Exception):
    """Base class of the closed request error family.

    Attributes:
        kind: Which variant this is.
        retryable: True/False per the taxonomy, None where retrying is left
                   to the caller's discretion.
    """

    kind: ErrorKind
    retryable: bool | None = False
    description: str = "Request failed"
    __match_args__: tuple[str, ...] = ()

    def __init__(self) -> None:
        super().__init__(self.description)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._fields() == other._fields()  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), repr(self._fields())))

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self._fields().items())
        return f"{type(self).__name__}({fields})"

    def _fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__match_args__}


class InvalidRequestError(RequestError):
    """The request URL could not be built."""

    kind = ErrorKind.INVALID_REQUEST
    description = "Invalid request"

    def __init__(self, reason: str = "") -> None:
        super().__init__()
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.description}: {self.reason}" if self.reason else self.description


class EncodingError(RequestError):
    """The request body could not be serialized."""

    kind = ErrorKind.ENCODING_ERROR
    description = "Request body could not be encoded"
    __match_args__ = ("cause",)

    def __init__(self, cause: BaseException) -> None:
        super().__init__()
        self.cause = cause


class UnderlyingError(RequestError):
    """The transport failed before a response was produced."""

    kind = ErrorKind.UNDERLYING
    retryable = None
    description = "Underlying transport failure"
    __match_args__ = ("cause",)

    def __init__(self, cause: BaseException) -> None:
        super().__init__()
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.description}: {self.cause}"


class InvalidHTTPResponseError(RequestError):
    """The transport returned something without a usable status code."""

    kind = ErrorKind.INVALID_HTTP_RESPONSE
    description = "Invalid HTTP response"


class EmptyErrorResponseError(RequestError):
    """Non-2xx status with an empty body."""

    kind = ErrorKind.EMPTY_ERROR_RESPONSE
    retryable = None
    description = "Empty error response"
    __match_args__ = ("status_code",)

    def __init__(self, status_code: int) -> None:
        super().__init__()
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.description} (status {self.status_code})"


class ApplicationError(RequestError):
    """Non-2xx status whose body decoded as the declared application error type."""

    kind = ErrorKind.APPLICATION_ERROR
    description = "Application error"
    __match_args__ = ("error",)

    def __init__(self, error: Any) -> None:
        super().__init__()
        self.error = error

    def __str__(self) -> str:
        return f"{self.description}: {self.error!r}"


class DecodingErrorFailure(RequestError):
    """Non-2xx status whose body failed to decode as the application error type.

    Keeps the raw status and body so the diagnostic is not lost.
    """

    kind = ErrorKind.DECODING_ERROR_FAILURE
    description = "Error response could not be decoded"
    __match_args__ = ("status_code", "body", "cause")

    def __init__(self, status_code: int, body: bytes, cause: BaseException) -> None:
        super().__init__()
        self.status_code = status_code
        self.body = body
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.description} (status {self.status_code}): {self.cause}"


class EmptyResponseError(RequestError):
    """2xx status with an empty body where content was expected."""

    kind = ErrorKind.EMPTY_RESPONSE
    description = "Empty response"


class DecodingFailure(RequestError):
    """2xx status whose body failed to decode as the response type."""

    kind = ErrorKind.DECODING_FAILURE
    description = "Response could not be decoded"
    __match_args__ = ("cause",)

    def __init__(self, cause: BaseException) -> None:
        super().__init__()
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.description}: {self.cause}"
