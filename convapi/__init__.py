"""convapi - A generic, typed client for JSON-over-HTTP APIs."""

from convapi.client import APIClient, AsyncAPIClient
from convapi.codec import CodecSettings, DateStrategy
from convapi.errors import (
    ApplicationError,
    DecodingErrorFailure,
    DecodingFailure,
    EmptyErrorResponseError,
    EmptyResponseError,
    EncodingError,
    ErrorKind,
    InvalidHTTPResponseError,
    InvalidRequestError,
    RequestError,
    UnderlyingError,
)
from convapi.models import APIMethod, EmptyResponse, Request, Response, Result

__version__ = "0.1.0"

__all__ = [
    "APIClient",
    "APIMethod",
    "ApplicationError",
    "AsyncAPIClient",
    "CodecSettings",
    "DateStrategy",
    "DecodingErrorFailure",
    "DecodingFailure",
    "EmptyErrorResponseError",
    "EmptyResponse",
    "EmptyResponseError",
    "EncodingError",
    "ErrorKind",
    "InvalidHTTPResponseError",
    "InvalidRequestError",
    "Request",
    "RequestError",
    "Response",
    "Result",
    "UnderlyingError",
]
