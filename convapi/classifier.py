"""Response Classifier - Maps one raw transport outcome to a Result.

Every calling convention funnels through classify(); it is the only place
that decides between a decoded value and a RequestError variant.

Precedence, first match wins:

    1. transport failed                    -> UnderlyingError
    2. no usable status                    -> InvalidHTTPResponseError
    3. status outside [200, 300)
       a. empty body                       -> EmptyErrorResponseError(status)
       b. body decodes as error type       -> ApplicationError(payload)
       c. otherwise                        -> DecodingErrorFailure(status, body, cause)
    4. status inside [200, 300)
       a. empty body                       -> EmptyResponseError
       b. body decodes as response type    -> value
       c. otherwise                        -> DecodingFailure(cause)

EmptyResponseError is reported even when the caller asked for EmptyResponse;
folding it into success is unwrap_empty()'s job, not the classifier's.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from convapi import codec
from convapi.codec import CodecSettings
from convapi.errors import (
    ApplicationError,
    CodecError,
    DecodingErrorFailure,
    DecodingFailure,
    EmptyErrorResponseError,
    EmptyResponseError,
    InvalidHTTPResponseError,
    UnderlyingError,
)
from convapi.models import EmptyResponse, Response, Result

logger = logging.getLogger(__name__)

U = TypeVar("U")

SUCCESS_RANGE = range(200, 300)


def is_success(status_code: int) -> bool:
    return status_code in SUCCESS_RANGE


def classify(
    response: Response | None,
    response_type: type[U] | Any,
    error_type: type | Any | None = None,
    settings: CodecSettings | None = None,
    failure: BaseException | None = None,
) -> Result[U]:
    """Classify a transport outcome.

    Args:
        response: The buffered response, or None if none was produced.
        response_type: Type to decode a 2xx body into.
        error_type: Type to decode a non-2xx body into. None means the API
                    has no structured error body, so any non-empty failure
                    body yields DecodingErrorFailure.
        settings: Codec settings used for decoding.
        failure: The exception the transport raised, if any.

    Returns:
        Result holding either the decoded value or exactly one RequestError.
    """
    result: Result[U] = _classify(response, response_type, error_type, settings, failure)
    logger.debug(
        "Classified status=%s as %s",
        response.status_code if response is not None else None,
        "success" if result.ok else result.error.kind.value,  # type: ignore[union-attr]
    )
    return result


def _classify(
    response: Response | None,
    response_type: Any,
    error_type: Any,
    settings: CodecSettings | None,
    failure: BaseException | None,
) -> Result[Any]:
    if failure is not None:
        return Result.failure(UnderlyingError(failure))

    if not isinstance(response, Response) or not isinstance(response.status_code, int):
        return Result.failure(InvalidHTTPResponseError())

    status_code = response.status_code
    body = response.body or b""

    if not is_success(status_code):
        if not body:
            return Result.failure(EmptyErrorResponseError(status_code))
        if error_type is None:
            cause = CodecError(f"No error type declared for status {status_code}")
            return Result.failure(DecodingErrorFailure(status_code, body, cause))
        try:
            payload = codec.decode(body, error_type, settings)
        except CodecError as e:
            return Result.failure(DecodingErrorFailure(status_code, body, e))
        return Result.failure(ApplicationError(payload))

    if not body:
        return Result.failure(EmptyResponseError())
    try:
        value = codec.decode(body, response_type, settings)
    except CodecError as e:
        return Result.failure(DecodingFailure(e))
    return Result.success(value)


def unwrap_empty(result: Result[Any]) -> Result[Any]:
    """Treat EmptyResponseError as success for callers that expect no payload.

    All other errors pass through untouched.
    """
    if isinstance(result.error, EmptyResponseError):
        return Result.success(EmptyResponse())
    return result
