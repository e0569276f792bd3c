"""Concurrency Adapter - Bridges transport completions to the caller's context.

Two directions are covered:

- Blocking over callbacks: wait_for_completion() parks the calling thread on
  a one-shot Event until a callback-style transport reports back.
- Callbacks back to the caller: a CompletionDispatcher captured at call time
  decides where a user completion handler runs, so handlers never execute
  on whichever worker thread the transport happened to use.

Dispatch targets, in order of preference (see capture_dispatcher):

    explicit dispatcher passed by the caller
    LoopDispatcher    the asyncio loop running on the calling thread
    client default    a SerialDispatcher owned by the client

Handlers always run inside the contextvars context copied when the call
was made.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import queue
from concurrent.futures import ThreadPoolExecutor
from threading import Event
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from convapi.models import Request, Response

logger = logging.getLogger(__name__)


@runtime_checkable
class CompletionDispatcher(Protocol):
    def dispatch(self, fn: Callable[..., Any], *args: Any) -> None:
        """Arrange for fn(*args) to run on this dispatcher's context."""
        ...


class LoopDispatcher:
    """Delivers completions onto an asyncio event loop, from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def dispatch(self, fn: Callable[..., Any], *args: Any) -> None:
        self._loop.call_soon_threadsafe(fn, *args)


class QueueDispatcher:
    """Queues completions until the owning thread drains them.

    The thread-level equivalent of a run loop: the thread that created the
    calls pumps run_pending() and the handlers run there.

    Usage:
        dispatcher = QueueDispatcher()
        client.request_with_callback(..., completion=handle, dispatcher=dispatcher)
        dispatcher.run_pending(block=True)  # runs handle() on this thread
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[tuple[Callable[..., Any], tuple[Any, ...]]] = (
            queue.SimpleQueue()
        )

    def dispatch(self, fn: Callable[..., Any], *args: Any) -> None:
        self._queue.put((fn, args))

    def run_pending(self, block: bool = False) -> int:
        """Run queued completions on the calling thread.

        Args:
            block: Wait (without timeout) for at least one completion when
                   the queue is empty.

        Returns:
            Number of completions run.
        """
        count = 0
        if block:
            fn, args = self._queue.get()
            fn(*args)
            count += 1
        while True:
            try:
                fn, args = self._queue.get_nowait()
            except queue.Empty:
                return count
            fn(*args)
            count += 1


class SerialDispatcher:
    """Runs completions one at a time, in order, on a single dedicated thread."""

    def __init__(self, name: str = "convapi-completion") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

    def dispatch(self, fn: Callable[..., Any], *args: Any) -> None:
        self._executor.submit(self._run, fn, *args)

    @staticmethod
    def _run(fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            # Nothing is waiting on this thread to receive the error
            logger.exception("Completion handler raised")

    def close(self) -> None:
        self._executor.shutdown(wait=True)


def capture_dispatcher(default: CompletionDispatcher) -> CompletionDispatcher:
    """Pick the dispatcher for a call being made on the current thread."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return default
    return LoopDispatcher(loop)


def bind_completion(
    completion: Callable[..., Any],
    dispatcher: CompletionDispatcher,
) -> Callable[..., None]:
    """Wrap completion so it runs on dispatcher inside the caller's contextvars.

    Must be called on the caller's thread: the context is copied here.
    """
    context = contextvars.copy_context()

    def deliver(*args: Any) -> None:
        dispatcher.dispatch(context.run, completion, *args)

    return deliver


def wait_for_completion(
    submit: Callable[[Request, Callable[[Response | None, BaseException | None], None]], None],
    request: Request,
) -> Response:
    """Block until a callback-style submit() reports back, then return or raise.

    The wait has no timeout: a submit() that never completes blocks the
    caller forever.

    Raises:
        BaseException: Whatever failure the completion reported.
    """
    done = Event()
    outcome: dict[str, Any] = {}

    def completion(response: Response | None, failure: BaseException | None) -> None:
        if done.is_set():
            logger.warning("Completion fired more than once for %s", request.url)
            return
        outcome["response"] = response
        outcome["failure"] = failure
        done.set()

    submit(request, completion)
    done.wait()

    if outcome["failure"] is not None:
        raise outcome["failure"]
    return outcome["response"]
