"""Tests for response classification.

Tests cover each branch of the precedence table, in order:
- Transport failure -> UnderlyingError
- Missing status -> InvalidHTTPResponseError
- Non-2xx: empty body, decodable error body, undecodable error body
- 2xx: empty body, decodable body, undecodable body
- unwrap_empty folding EmptyResponseError into success
"""

from datetime import datetime, timezone

import pytest
from pydantic import BaseModel

from convapi.classifier import classify, is_success, unwrap_empty
from convapi.codec import CodecSettings, DateStrategy
from convapi.errors import (
    ApplicationError,
    CodecError,
    DecodingErrorFailure,
    DecodingFailure,
    EmptyErrorResponseError,
    EmptyResponseError,
    ErrorKind,
    InvalidHTTPResponseError,
    UnderlyingError,
)
from convapi.models import EmptyResponse, Result
from tests.conftest import APIErrorBody, Post, make_response


class PostWithDate(BaseModel):
    name: str
    date: datetime


DATE = datetime.fromtimestamp(1547813428, tz=timezone.utc)

NON_SUCCESS = [100, 199, 300, 302, 400, 404, 418, 500, 503]
SUCCESS = [200, 201, 204, 250, 299]


class TestSuccessRange:
    @pytest.mark.parametrize("status", SUCCESS)
    def test_inside(self, status: int) -> None:
        assert is_success(status)

    @pytest.mark.parametrize("status", NON_SUCCESS)
    def test_outside(self, status: int) -> None:
        assert not is_success(status)


class TestStructuralFailures:
    def test_transport_failure_wins_over_everything(self) -> None:
        cause = ConnectionError("refused")
        result = classify(make_response(200, b'{"name": "x"}'), Post, APIErrorBody, failure=cause)
        assert result.error == UnderlyingError(cause)

    def test_no_response(self) -> None:
        result = classify(None, Post, APIErrorBody)
        assert isinstance(result.error, InvalidHTTPResponseError)

    def test_no_status(self) -> None:
        result = classify(make_response(None, b'{"name": "x"}'), Post, APIErrorBody)
        assert isinstance(result.error, InvalidHTTPResponseError)


class TestNonSuccess:
    @pytest.mark.parametrize("status", NON_SUCCESS)
    def test_empty_body_keeps_status(self, status: int) -> None:
        result = classify(make_response(status), Post, APIErrorBody)
        assert result.error == EmptyErrorResponseError(status)
        assert result.error.status_code == status

    def test_application_error_decoded(self) -> None:
        body = b'{"code": 1, "message": "Test"}'
        result = classify(make_response(400, body), Post, APIErrorBody)
        assert isinstance(result.error, ApplicationError)
        assert result.error.error == APIErrorBody(code=1, message="Test")

    def test_undecodable_error_body_keeps_raw_diagnostic(self) -> None:
        body = b"<html>Bad Gateway</html>"
        result = classify(make_response(502, body), Post, APIErrorBody)
        assert isinstance(result.error, DecodingErrorFailure)
        assert result.error.status_code == 502
        assert result.error.body == body
        assert isinstance(result.error.cause, CodecError)

    def test_no_error_type_declared(self) -> None:
        result = classify(make_response(500, b'{"code": 1}'), Post, None)
        assert result.error.kind is ErrorKind.DECODING_ERROR_FAILURE

    def test_success_type_never_used_for_errors(self) -> None:
        """A failure body shaped like the response type is still an error."""
        result = classify(make_response(404, b'{"name": "x"}'), Post, APIErrorBody)
        assert isinstance(result.error, DecodingErrorFailure)


class TestSuccess:
    @pytest.mark.parametrize("status", SUCCESS)
    def test_decoded_value(self, status: int) -> None:
        result = classify(make_response(status, b'{"name": "example"}'), Post, APIErrorBody)
        assert result.ok
        assert result.value == Post(name="example")

    @pytest.mark.parametrize("status", SUCCESS)
    def test_empty_body(self, status: int) -> None:
        result = classify(make_response(status), Post, APIErrorBody)
        assert isinstance(result.error, EmptyResponseError)

    def test_empty_body_reported_even_for_empty_marker(self) -> None:
        result = classify(make_response(200), EmptyResponse, APIErrorBody)
        assert isinstance(result.error, EmptyResponseError)

    def test_undecodable_body(self) -> None:
        result = classify(make_response(200, b'{"title": 1}'), Post, APIErrorBody)
        assert isinstance(result.error, DecodingFailure)
        assert isinstance(result.error.cause, CodecError)

    def test_decode_uses_settings(self) -> None:
        settings = CodecSettings(date_decoding=DateStrategy.SECONDS_SINCE_1970)
        body = b'{"name": "t", "date": 1547813428}'
        assert classify(make_response(200, body), PostWithDate, None, settings).value == (
            PostWithDate(name="t", date=DATE)
        )
        assert isinstance(
            classify(make_response(200, body), PostWithDate, None).error, DecodingFailure
        )


class TestUnwrapEmpty:
    def test_empty_response_becomes_success(self) -> None:
        result = unwrap_empty(Result.failure(EmptyResponseError()))
        assert result.ok
        assert result.value == EmptyResponse()

    def test_other_errors_pass_through(self) -> None:
        error = EmptyErrorResponseError(500)
        assert unwrap_empty(Result.failure(error)).error is error

    def test_success_passes_through(self) -> None:
        result = Result.success(Post(name="x"))
        assert unwrap_empty(result) is result


class TestExclusivity:
    """Exactly one outcome per classification."""

    @pytest.mark.parametrize("status", SUCCESS + NON_SUCCESS)
    @pytest.mark.parametrize(
        "body", [b"", b'{"name": "x"}', b'{"code": 1, "message": "m"}', b"garbage"]
    )
    def test_value_xor_error(self, status: int, body: bytes) -> None:
        result = classify(make_response(status, body), Post, APIErrorBody)
        assert (result.value is None) != (result.error is None)
