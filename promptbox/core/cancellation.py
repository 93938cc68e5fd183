"""
Cooperative cancellation for awaited work started from sandboxed expressions.

``CancellationToken`` has signal-once semantics: the first ``cancel`` wins
and every listener runs exactly once. ``run_with_timeout`` races an awaitable
against a timer driven by such a token and always releases the timer and the
listener, whichever side finishes first.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from promptbox.core.errors import ExecutionTimeoutError

_log = logging.getLogger(__name__)

T = TypeVar("T")

REASON_TIMEOUT = "timeout"
REASON_COMPLETED = "completed"


class CancellationToken:
    """One-shot cancellation signal with listener cleanup."""

    __slots__ = ("_listeners", "_lock", "_reason")

    def __init__(self) -> None:
        self._listeners: list[Callable[[str], Any]] = []
        self._lock = threading.Lock()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    def add_listener(self, listener: Callable[[str], Any]) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it.

        If the token is already cancelled the listener is called immediately.
        """
        with self._lock:
            reason = self._reason
            if reason is None:
                self._listeners.append(listener)
        if reason is not None:
            listener(reason)
            return lambda: None

        def remove() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return remove

    def cancel(self, reason: str = REASON_TIMEOUT) -> bool:
        """Signal cancellation. Returns True only for the call that won."""
        with self._lock:
            if self._reason is not None:
                return False
            self._reason = reason
            listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener(reason)
            except Exception:
                _log.exception("cancellation listener failed")
        return True


async def run_with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    *,
    token: CancellationToken | None = None,
    label: str = "Async execution",
) -> T:
    """Await *awaitable* for at most *timeout_seconds*.

    On expiry the token is cancelled with ``REASON_TIMEOUT``, the pending task
    is cancelled and ``ExecutionTimeoutError`` is raised. On every exit path
    the timer handle is cancelled and the listener removed.
    """
    loop = asyncio.get_running_loop()
    tok = token or CancellationToken()
    task = asyncio.ensure_future(awaitable)
    remove = tok.add_listener(lambda _reason: task.cancel())
    timer = loop.call_later(max(0.0, timeout_seconds), tok.cancel, REASON_TIMEOUT)
    try:
        return await task
    except asyncio.CancelledError:
        if tok.reason == REASON_TIMEOUT:
            raise ExecutionTimeoutError(
                f"{label} timed out after {int(timeout_seconds * 1000)}ms"
            ) from None
        raise
    finally:
        timer.cancel()
        remove()
        tok.cancel(REASON_COMPLETED)
        if not task.done():
            task.cancel()
