"""Pytest configuration and fixtures for convapi tests.

This file provides:
- make_response / mock_transport: Helpers for driving the engine without a network
- PortReservation: Race-free port allocation for the echo server
- EchoServer: Subprocess management for tests/integration/echo_server.py
- Fixtures: Shared test infrastructure
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest
from pydantic import BaseModel

from convapi.models import Response
from convapi.transport import AsyncHTTPXTransport, HTTPXTransport

PROJECT_ROOT = Path(__file__).parent.parent
ECHO_SERVER_MODULE = "tests.integration.echo_server"

BASE_URL = "http://api.test"


# =============================================================================
# Shared Payload Types
# =============================================================================


class Post(BaseModel):
    name: str


class APIErrorBody(BaseModel):
    code: int
    message: str


# =============================================================================
# Helpers
# =============================================================================


def make_response(
    status_code: int | None = 200,
    body: bytes = b"",
    headers: dict[str, str] | None = None,
) -> Response:
    """Create a Response for classifier tests; status and body are what vary."""
    return Response(status_code=status_code, headers=headers or {}, body=body)


def mock_transport(
    handler: Callable[[httpx.Request], httpx.Response],
) -> HTTPXTransport:
    """HTTPXTransport whose network is replaced by an httpx.MockTransport handler."""
    client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)
    return HTTPXTransport(client=client)


def async_mock_transport(
    handler: Callable[[httpx.Request], httpx.Response],
) -> AsyncHTTPXTransport:
    """AsyncHTTPXTransport counterpart of mock_transport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return AsyncHTTPXTransport(client=client)


def echo_handler(request: httpx.Request) -> httpx.Response:
    """In-process equivalent of the echo server's /post and /get endpoints."""
    status = int(request.headers.get("x-http-status", "200"))
    if request.method == "GET":
        return httpx.Response(status, json=dict(request.url.params))
    return httpx.Response(status, content=request.content)


# =============================================================================
# Echo Server Process
# =============================================================================


class PortReservation:
    """Keeps an ephemeral port bound until the echo server is about to take it.

    Usage:
        reservation = PortReservation()
        EchoServer(reservation).start()  # releases, then the server binds
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class EchoServer:
    """Manages the echo server subprocess for integration tests."""

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.port = reservation.port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the echo server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", ECHO_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"EchoServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the subprocess, escalating to SIGKILL after 5s.

        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait(timeout=5)
            self._process = None

    def __enter__(self) -> EchoServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def echo_server() -> Generator[EchoServer, None, None]:
    """Session-scoped echo server; starts once per test session."""
    with EchoServer(PortReservation()) as server:
        yield server


@pytest.fixture
def echo_transport() -> Generator[HTTPXTransport, None, None]:
    """Blocking transport wired to the in-process echo handler."""
    transport = mock_transport(echo_handler)
    yield transport
    transport._client.close()


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Tag tests as integration or unit based on their directory.

    Enables running subsets via:
        pytest -m integration
        pytest -m unit
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
