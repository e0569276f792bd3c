"""Client facades - The public generic request operation.

Two facades expose the same operation in four shapes:

    APIClient.request(...)                -> value, raises RequestError
    APIClient.request_result(...)         -> Result
    APIClient.request_with_callback(...)  -> completion(Result) on the caller's context
    APIClient.send(...)                   -> None, fire-and-forget (unwrap-empty)

    AsyncAPIClient.request / request_result / send   (await-able equivalents)

All of them run the same Engine: encode -> build -> perform -> classify.
Only the way the transport is driven and the way the Result is handed
back differ.

Usage:
    with APIClient() as api:
        user = api.request(
            "GET", "https://api.example.com", "/users/1",
            response_type=User, error_type=APIErrorBody,
        )
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping

from convapi.codec import CodecSettings
from convapi.concurrency import (
    CompletionDispatcher,
    SerialDispatcher,
    bind_completion,
    capture_dispatcher,
)
from convapi.config_loader import load_client_config
from convapi.engine import Call, Engine
from convapi.errors import RequestError
from convapi.models import APIMethod, EmptyResponse, Result
from convapi.request_builder import Decorator
from convapi.transport import (
    AsyncHTTPXTransport,
    AsyncTransport,
    BlockingTransport,
    CallbackTransport,
    HTTPXTransport,
    ThreadedTransport,
    Transport,
)

logger = logging.getLogger(__name__)


class _ClientBase:
    """Settings and engine shared by both facades."""

    def __init__(
        self,
        codec_settings: CodecSettings | None,
        base_url: str | None,
        default_headers: Mapping[str, str] | None,
    ) -> None:
        # Copied so two clients never share settings
        self.codec_settings = (codec_settings or CodecSettings()).model_copy()
        self._engine = Engine(base_url=base_url, default_headers=dict(default_headers or {}))

    @property
    def base_url(self) -> str | None:
        return self._engine.base_url

    @property
    def default_headers(self) -> dict[str, str]:
        return self._engine.default_headers

    def _snapshot_settings(self) -> CodecSettings:
        return self.codec_settings.model_copy()


class APIClient(_ClientBase):
    """Blocking client; also offers the callback convention.

    The transport may be blocking (Transport) or callback-based
    (CallbackTransport). Blocking calls over a callback transport wait on it
    through BlockingTransport; callback calls over a blocking transport run
    it on a worker pool through ThreadedTransport.

    The client owns, and closes, transports it created itself.
    """

    def __init__(
        self,
        transport: Transport | CallbackTransport | None = None,
        codec_settings: CodecSettings | None = None,
        base_url: str | None = None,
        default_headers: Mapping[str, str] | None = None,
        completion_workers: int = 4,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Transport to perform requests with. Defaults to a new
                       HTTPXTransport owned by this client.
            codec_settings: Encode/decode settings; copied, never shared.
            base_url: Base URL used when a call does not pass one.
            default_headers: Headers sent with every call (per-call headers win).
            completion_workers: Worker threads for callback-style calls.
        """
        super().__init__(codec_settings, base_url, default_headers)
        self._owned: list[Any] = []

        if transport is None:
            transport = HTTPXTransport()
            self._owned.append(transport)

        if isinstance(transport, Transport):
            self._blocking: Transport = transport
            threaded = ThreadedTransport(transport, max_workers=completion_workers)
            self._owned.append(threaded)
            self._callback: CallbackTransport = threaded
        else:
            self._callback = transport
            self._blocking = BlockingTransport(transport)

        self._completion_dispatcher = SerialDispatcher()

    @classmethod
    def from_config(cls, config_path: Path | str) -> APIClient:
        """Build a client from a YAML config file (see convapi.config_loader)."""
        config = load_client_config(config_path)
        transport = HTTPXTransport(timeout=config.timeout)
        client = cls(
            transport=transport,
            codec_settings=config.codec,
            base_url=config.base_url,
            default_headers=config.headers,
        )
        # Closed after the worker pool wrapping it
        client._owned.insert(0, transport)
        return client

    def __enter__(self) -> APIClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Wait for pending callbacks, then close owned transports."""
        try:
            for resource in reversed(self._owned):
                resource.close()
        finally:
            self._completion_dispatcher.close()

    # -------------------------------------------------------------------------
    # Public operation, four shapes
    # -------------------------------------------------------------------------

    def request(
        self,
        method: APIMethod | str = APIMethod.GET,
        base_url: str | None = None,
        resource: str = "/",
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        response_type: Any = EmptyResponse,
        error_type: Any = None,
        decorator: Decorator | None = None,
    ) -> Any:
        """Perform a call and return the decoded response.

        Args:
            method: HTTP method.
            base_url: Origin plus optional path prefix; falls back to the
                      configured base URL.
            resource: Path suffix appended to base_url.
            headers: Extra headers; may override Content-Type.
            params: Query parameters (scalar values).
            body: Request body, encoded as JSON. None sends no body.
            response_type: Type to decode a 2xx body into.
            error_type: Type to decode a non-2xx body into.
            decorator: Hook that may mutate the built Request before dispatch.

        Returns:
            The decoded response_type instance.

        Raises:
            RequestError: Exactly one variant describing the failure.
        """
        call = Call(
            method=method,
            base_url=base_url,
            resource=resource,
            headers=headers,
            params=params,
            body=body,
            response_type=response_type,
            error_type=error_type,
            decorator=decorator,
        )
        return self._execute(call).unwrap()

    def request_result(
        self,
        method: APIMethod | str = APIMethod.GET,
        base_url: str | None = None,
        resource: str = "/",
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        response_type: Any = EmptyResponse,
        error_type: Any = None,
        decorator: Decorator | None = None,
    ) -> Result[Any]:
        """Same as request(), but returns a Result instead of raising."""
        call = Call(
            method=method,
            base_url=base_url,
            resource=resource,
            headers=headers,
            params=params,
            body=body,
            response_type=response_type,
            error_type=error_type,
            decorator=decorator,
        )
        return self._execute(call)

    def request_with_callback(
        self,
        method: APIMethod | str = APIMethod.GET,
        base_url: str | None = None,
        resource: str = "/",
        *,
        completion: Callable[[Result[Any]], None],
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        response_type: Any = EmptyResponse,
        error_type: Any = None,
        decorator: Decorator | None = None,
        dispatcher: CompletionDispatcher | None = None,
    ) -> None:
        """Start a call and deliver its Result to completion.

        Returns immediately; the transport runs on a worker. completion runs
        on the dispatcher captured now: the explicit one if given, else the
        asyncio loop running on this thread, else the client's serial
        completion thread. It is called exactly once, including for failures
        detected before dispatch.
        """
        call = Call(
            method=method,
            base_url=base_url,
            resource=resource,
            headers=headers,
            params=params,
            body=body,
            response_type=response_type,
            error_type=error_type,
            decorator=decorator,
        )
        deliver = bind_completion(
            completion, dispatcher or capture_dispatcher(self._completion_dispatcher)
        )
        settings = self._snapshot_settings()

        try:
            request = self._engine.prepare(call, settings)
        except RequestError as e:
            deliver(Result.failure(e))
            return

        def on_complete(response: Any, failure: BaseException | None) -> None:
            deliver(self._engine.finish(call, settings, response=response, failure=failure))

        self._callback.submit(request, on_complete)

    def send(
        self,
        method: APIMethod | str = APIMethod.GET,
        base_url: str | None = None,
        resource: str = "/",
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        error_type: Any = None,
        decorator: Decorator | None = None,
    ) -> None:
        """Perform a call whose response payload is of no interest.

        A 2xx response with an empty body is success. A 2xx response with a
        JSON body is also success (the body is ignored).

        Raises:
            RequestError: Any failure other than EmptyResponseError.
        """
        call = Call(
            method=method,
            base_url=base_url,
            resource=resource,
            headers=headers,
            params=params,
            body=body,
            response_type=EmptyResponse,
            error_type=error_type,
            decorator=decorator,
            expect_empty=True,
        )
        self._execute(call).unwrap()

    # -------------------------------------------------------------------------

    def _execute(self, call: Call) -> Result[Any]:
        settings = self._snapshot_settings()
        try:
            request = self._engine.prepare(call, settings)
        except RequestError as e:
            return Result.failure(e)

        try:
            response = self._blocking.perform(request)
        except Exception as e:
            # TransportError, or anything a custom transport let escape
            return self._engine.finish(call, settings, failure=e)
        return self._engine.finish(call, settings, response=response)


class AsyncAPIClient(_ClientBase):
    """asyncio client.

    The awaiting task is suspended for the duration of the call; cancelling
    it aborts the in-flight transport request and raises CancelledError
    instead of returning or raising a RequestError.

    Usage:
        async with AsyncAPIClient() as api:
            post = await api.request("POST", url, "/post", body=post, response_type=Post)
    """

    def __init__(
        self,
        transport: AsyncTransport | None = None,
        codec_settings: CodecSettings | None = None,
        base_url: str | None = None,
        default_headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(codec_settings, base_url, default_headers)
        self._owns_transport = transport is None
        self._transport: AsyncTransport = transport or AsyncHTTPXTransport()

    @classmethod
    def from_config(cls, config_path: Path | str) -> AsyncAPIClient:
        """Build a client from a YAML config file (see convapi.config_loader)."""
        config = load_client_config(config_path)
        client = cls(
            transport=AsyncHTTPXTransport(timeout=config.timeout),
            codec_settings=config.codec,
            base_url=config.base_url,
            default_headers=config.headers,
        )
        client._owns_transport = True
        return client

    async def __aenter__(self) -> AsyncAPIClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()  # type: ignore[attr-defined]

    async def request(
        self,
        method: APIMethod | str = APIMethod.GET,
        base_url: str | None = None,
        resource: str = "/",
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        response_type: Any = EmptyResponse,
        error_type: Any = None,
        decorator: Decorator | None = None,
    ) -> Any:
        """Await a call and return the decoded response; see APIClient.request."""
        call = Call(
            method=method,
            base_url=base_url,
            resource=resource,
            headers=headers,
            params=params,
            body=body,
            response_type=response_type,
            error_type=error_type,
            decorator=decorator,
        )
        result = await self._execute(call)
        return result.unwrap()

    async def request_result(
        self,
        method: APIMethod | str = APIMethod.GET,
        base_url: str | None = None,
        resource: str = "/",
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        response_type: Any = EmptyResponse,
        error_type: Any = None,
        decorator: Decorator | None = None,
    ) -> Result[Any]:
        call = Call(
            method=method,
            base_url=base_url,
            resource=resource,
            headers=headers,
            params=params,
            body=body,
            response_type=response_type,
            error_type=error_type,
            decorator=decorator,
        )
        return await self._execute(call)

    async def send(
        self,
        method: APIMethod | str = APIMethod.GET,
        base_url: str | None = None,
        resource: str = "/",
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        error_type: Any = None,
        decorator: Decorator | None = None,
    ) -> None:
        """Await a fire-and-forget call; see APIClient.send."""
        call = Call(
            method=method,
            base_url=base_url,
            resource=resource,
            headers=headers,
            params=params,
            body=body,
            response_type=EmptyResponse,
            error_type=error_type,
            decorator=decorator,
            expect_empty=True,
        )
        result = await self._execute(call)
        result.unwrap()

    async def _execute(self, call: Call) -> Result[Any]:
        settings = self._snapshot_settings()
        try:
            request = self._engine.prepare(call, settings)
        except RequestError as e:
            return Result.failure(e)

        try:
            response = await self._transport.perform(request)
        except Exception as e:
            # TransportError, or anything a custom transport let escape
            return self._engine.finish(call, settings, failure=e)
        return self._engine.finish(call, settings, response=response)
