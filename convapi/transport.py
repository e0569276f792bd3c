"""Transports - Perform exactly one HTTP request and return a buffered Response.

A transport is a capability with a single method. The engine only sees the
protocols below, so tests can swap the network for a recording stub without
touching the engine.

    Transport          perform(request) -> Response            (blocking)
    AsyncTransport     await perform(request) -> Response      (asyncio)
    CallbackTransport  submit(request, completion) -> None     (callback)

Production transports are backed by httpx and follow redirects, so only the
final response is ever visible to the classifier. No retries, no caching.
"""

from __future__ import annotations

import copy
import logging
from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Any, Callable, Protocol, runtime_checkable

import httpx

from convapi.concurrency import wait_for_completion
from convapi.errors import TransportError
from convapi.models import Request, Response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

Completion = Callable[[Response | None, BaseException | None], None]


@runtime_checkable
class Transport(Protocol):
    def perform(self, request: Request) -> Response:
        """Perform the request, raising TransportError if no response arrives."""
        ...


@runtime_checkable
class AsyncTransport(Protocol):
    async def perform(self, request: Request) -> Response:
        """Perform the request, raising TransportError if no response arrives."""
        ...


@runtime_checkable
class CallbackTransport(Protocol):
    def submit(self, request: Request, completion: Completion) -> None:
        """Start the request; completion(response, failure) fires exactly once."""
        ...


def _convert_response(response: httpx.Response) -> Response:
    """Convert an httpx Response to a Response with lowercase header keys.

    Repeated headers are joined with ", " as RFC 9110 allows.
    """
    headers: dict[str, str] = {}
    for key, value in response.headers.multi_items():
        key_lower = key.lower()
        if key_lower in headers:
            headers[key_lower] = f"{headers[key_lower]}, {value}"
        else:
            headers[key_lower] = value

    status_code = response.status_code if isinstance(response.status_code, int) else None
    return Response(status_code=status_code, headers=headers, body=response.content or b"")


def _request_kwargs(request: Request) -> dict[str, Any]:
    # One value per header name ignoring case; the last write wins
    headers: dict[str, str] = {}
    for key, value in request.headers.items():
        for existing in [k for k in headers if k.lower() == key.lower()]:
            del headers[existing]
        headers[key] = value
    return {
        "method": request.method.value,
        "url": request.url,
        "headers": headers,
        "content": request.body,
    }


# =============================================================================
# httpx Transports
# =============================================================================


class HTTPXTransport:
    """Blocking transport backed by httpx.Client.

    Usage:
        with HTTPXTransport() as transport:
            response = transport.perform(request)

    A pre-built client may be injected (e.g. one wrapping httpx.MockTransport);
    an injected client is not closed by close().
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=timeout)
        self._timeout = timeout

    def __enter__(self) -> HTTPXTransport:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def perform(self, request: Request) -> Response:
        """Send the request and buffer the final response.

        Raises:
            TransportError: On connection errors, timeouts, TLS failures,
                            or too many redirects.
        """
        logger.debug("Performing %s %s", request.method.value, request.url)
        try:
            http_response = self._client.request(
                **_request_kwargs(request),
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise TransportError(e) from e
        except UnicodeEncodeError as e:
            # Non-ASCII in a header name or value
            raise TransportError(e) from e
        return _convert_response(http_response)


class AsyncHTTPXTransport:
    """asyncio transport backed by httpx.AsyncClient.

    Cancelling the awaiting task aborts the in-flight httpx request; the
    CancelledError is not converted.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True, timeout=timeout)
        self._timeout = timeout

    async def __aenter__(self) -> AsyncHTTPXTransport:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def perform(self, request: Request) -> Response:
        logger.debug("Performing %s %s", request.method.value, request.url)
        try:
            http_response = await self._client.request(
                **_request_kwargs(request),
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise TransportError(e) from e
        except UnicodeEncodeError as e:
            raise TransportError(e) from e
        return _convert_response(http_response)


# =============================================================================
# Concurrency Shape Adapters
# =============================================================================


class ThreadedTransport:
    """Runs a blocking Transport on a worker pool, reporting via callback.

    The completion fires on the worker thread; the client facade is
    responsible for marshalling it back onto the caller's context.
    """

    def __init__(self, transport: Transport, max_workers: int = 4) -> None:
        self._transport = transport
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="convapi-transport"
        )

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    def submit(self, request: Request, completion: Completion) -> None:
        self._pool.submit(self._run, request, completion)

    def _run(self, request: Request, completion: Completion) -> None:
        try:
            response = self._transport.perform(request)
        except Exception as e:
            # Reported through the completion, never raised on the worker
            self._deliver(request, completion, None, e)
            return
        self._deliver(request, completion, response, None)

    @staticmethod
    def _deliver(
        request: Request,
        completion: Completion,
        response: Response | None,
        failure: BaseException | None,
    ) -> None:
        # Nothing collects the pool's futures, so a raising completion is logged here
        try:
            completion(response, failure)
        except Exception:
            logger.exception("Completion for %s %s raised", request.method.value, request.url)


class BlockingTransport:
    """Synchronous wrapper over a CallbackTransport.

    Blocks the calling thread until the completion fires, with no timeout:
    a transport that never calls back hangs the caller forever.
    """

    def __init__(self, transport: CallbackTransport) -> None:
        self._transport = transport

    def perform(self, request: Request) -> Response:
        """Wait for the callback transport and return its response.

        Raises:
            TransportError: For any reported failure; failures of other
                            types are wrapped.
        """
        try:
            return wait_for_completion(self._transport.submit, request)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(e) from e


# =============================================================================
# Recording Stubs
# =============================================================================


class RecordingTransport:
    """Test stub: records each outgoing Request, then delegates to a real transport.

    Usage:
        recorder = RecordingTransport(HTTPXTransport(), on_request=check_headers)
        client = APIClient(transport=recorder)
        ...
        assert recorder.requests[0].get_header("Content-Type") == "application/json"
    """

    def __init__(
        self,
        delegate: Transport,
        on_request: Callable[[Request], None] | None = None,
    ) -> None:
        self._delegate = delegate
        self._on_request = on_request
        self._lock = Lock()
        self.requests: list[Request] = []

    def perform(self, request: Request) -> Response:
        with self._lock:
            self.requests.append(copy.deepcopy(request))
        if self._on_request is not None:
            self._on_request(request)
        return self._delegate.perform(request)


class AsyncRecordingTransport:
    """asyncio counterpart of RecordingTransport."""

    def __init__(
        self,
        delegate: AsyncTransport,
        on_request: Callable[[Request], None] | None = None,
    ) -> None:
        self._delegate = delegate
        self._on_request = on_request
        self.requests: list[Request] = []

    async def perform(self, request: Request) -> Response:
        self.requests.append(copy.deepcopy(request))
        if self._on_request is not None:
            self._on_request(request)
        return await self._delegate.perform(request)
