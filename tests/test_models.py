"""Tests for Request/Response models and Result."""

import pytest
from pydantic import ValidationError

from convapi.errors import EmptyResponseError
from convapi.models import APIMethod, EmptyResponse, Request, Response, Result


class TestRequestHeaders:
    def test_get_header_ignores_case(self) -> None:
        request = Request(method=APIMethod.GET, url="http://h/", headers={"Content-Type": "a"})
        assert request.get_header("content-type") == "a"
        assert request.get_header("CONTENT-TYPE") == "a"
        assert request.get_header("Accept") is None

    def test_set_header_replaces_all_spellings(self) -> None:
        request = Request(
            method=APIMethod.GET,
            url="http://h/",
            headers={"x-token": "1", "X-TOKEN": "2"},
        )
        request.set_header("X-Token", "3")
        assert request.headers == {"X-Token": "3"}

    def test_get_header_last_direct_write_wins(self) -> None:
        request = Request(method=APIMethod.GET, url="http://h/", headers={"Content-Type": "a"})
        request.headers["content-type"] = "b"
        assert request.get_header("Content-Type") == "b"

    def test_method_validated_on_assignment(self) -> None:
        request = Request(method=APIMethod.GET, url="http://h/")
        with pytest.raises(ValidationError):
            request.method = "FETCH"  # type: ignore[assignment]

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Request(method=APIMethod.GET, url="http://h/", timeout=3)  # type: ignore[call-arg]


class TestResponse:
    def test_body_defaults_to_empty_bytes(self) -> None:
        assert Response(status_code=204).body == b""

    def test_status_may_be_missing(self) -> None:
        assert Response(status_code=None).status_code is None


class TestResult:
    def test_success(self) -> None:
        result = Result.success(EmptyResponse())
        assert result.ok
        assert result.unwrap() == EmptyResponse()

    def test_failure_unwrap_raises_stored_error(self) -> None:
        error = EmptyResponseError()
        result = Result.failure(error)
        assert not result.ok
        with pytest.raises(EmptyResponseError) as exc_info:
            result.unwrap()
        assert exc_info.value is error

    def test_immutable(self) -> None:
        result = Result.success(1)
        with pytest.raises(AttributeError):
            result.value = 2  # type: ignore[misc]


class TestAPIMethod:
    def test_values_are_wire_names(self) -> None:
        assert [m.value for m in APIMethod] == [
            "GET", "POST", "PUT", "DELETE", "HEAD", "OPTIONS", "TRACE",
        ]
