"""Engine - The one request/response path shared by every calling convention.

A call is described by a Call value. The engine turns it into a Request
(prepare) and turns whatever the transport produced into a Result (finish).
The facades in convapi.client only decide how to drive the transport and how
to hand the Result back: raise, return, or call back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from convapi import codec
from convapi.classifier import classify, unwrap_empty
from convapi.codec import CodecSettings
from convapi.errors import CodecError, EncodingError, InvalidRequestError, TransportError
from convapi.models import APIMethod, EmptyResponse, Request, Response, Result
from convapi.request_builder import Decorator, build_request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Call:
    """Everything one call site specified.

    body=None means "no body". expect_empty marks fire-and-forget calls whose
    EmptyResponseError is folded into success.
    """

    method: APIMethod | str = APIMethod.GET
    base_url: str | None = None
    resource: str = "/"
    headers: Mapping[str, str] | None = None
    params: Mapping[str, Any] | None = None
    body: Any = None
    response_type: Any = EmptyResponse
    error_type: Any = None
    decorator: Decorator | None = None
    expect_empty: bool = False


def merge_headers(
    defaults: Mapping[str, str], overrides: Mapping[str, str] | None
) -> dict[str, str]:
    """Lay overrides over defaults, matching header names ignoring case."""
    merged = dict(defaults)
    for name, value in (overrides or {}).items():
        for key in [k for k in merged if k.lower() == name.lower()]:
            del merged[key]
        merged[name] = value
    return merged


@dataclass
class Engine:
    """Prepares requests and classifies outcomes for one client.

    base_url and default_headers come from client configuration and apply
    when a call does not override them.
    """

    base_url: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)

    def prepare(self, call: Call, settings: CodecSettings) -> Request:
        """Encode the body and build the Request.

        Encoding happens first: a body that cannot be encoded short-circuits
        before any URL is built or transport touched.

        Raises:
            EncodingError: If the body cannot be serialized.
            InvalidRequestError: If no base URL is available or the URL is invalid.
        """
        encoded: bytes | None = None
        if call.body is not None:
            try:
                encoded = codec.encode(call.body, settings)
            except CodecError as e:
                raise EncodingError(e) from e

        base_url = call.base_url or self.base_url
        if not base_url:
            raise InvalidRequestError("no base URL given and none configured")

        return build_request(
            method=call.method,
            base_url=base_url,
            resource=call.resource,
            headers=merge_headers(self.default_headers, call.headers),
            params=call.params,
            body=encoded,
            decorator=call.decorator,
        )

    def finish(
        self,
        call: Call,
        settings: CodecSettings,
        response: Response | None = None,
        failure: BaseException | None = None,
    ) -> Result[Any]:
        """Classify the transport outcome and apply unwrap-empty if requested."""
        if isinstance(failure, TransportError):
            failure = failure.cause
        result = classify(response, call.response_type, call.error_type, settings, failure)
        if call.expect_empty:
            result = unwrap_empty(result)
        return result
