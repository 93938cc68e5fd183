"""
SandboxExecutor: execute(compiled, context, timeout_ms) -> value.

Evaluates RestrictedPython bytecode against the context's restricted globals
under a wall-clock deadline. On the main thread of Unix platforms the
deadline is a SIGALRM interval timer; anywhere else a trace function checks
the deadline on every call/line event. If the value is awaitable (e.g. an
``http.get`` call) it is awaited under a second, token-driven timeout.
"""

import inspect
import logging
import signal
import sys
import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from promptbox.core.cancellation import CancellationToken, run_with_timeout
from promptbox.core.config import settings
from promptbox.core.errors import ExecutionTimeoutError

from .context import RenderContext
from .sandbox import CompiledExpression

_log = logging.getLogger(__name__)

T = TypeVar("T")


def _timeout_message(label: str, timeout_sec: float) -> str:
    return f"{label} timed out after {int(timeout_sec * 1000)}ms"


def _deadline_tracer(deadline: float, timeout_sec: float, label: str) -> Callable[..., Any]:
    """Trace function raising on every event once *deadline* has passed."""

    def _tracer(frame: Any, event: str, arg: Any) -> Any:
        if time.monotonic() > deadline:
            raise ExecutionTimeoutError(_timeout_message(label, timeout_sec))
        return _tracer

    return _tracer


def _call_with_alarm(fn: Callable[[], T], timeout_sec: float, label: str) -> T:
    """
    Run fn() with signal.SIGALRM. Unix main thread only.

    When the alarm fires, the deadline tracer is installed on every frame
    below this one as well, so code that swallows the timeout raises again
    on its next line until fn() unwinds.
    """
    owner = inspect.currentframe()
    tracer = _deadline_tracer(time.monotonic() + timeout_sec, timeout_sec, label)

    def _handler(signum: int, frame: Any) -> None:
        sys.settrace(tracer)
        f = frame
        while f is not None and f is not owner:
            f.f_trace = tracer
            f = f.f_back
        raise ExecutionTimeoutError(_timeout_message(label, timeout_sec))

    old = signal.signal(signal.SIGALRM, _handler)
    old_trace = sys.gettrace()
    started = time.monotonic()
    previous = 0.0
    try:
        previous, _ = signal.setitimer(signal.ITIMER_REAL, timeout_sec)
        try:
            return fn()
        finally:
            signal.setitimer(signal.ITIMER_REAL, 0)
    finally:
        sys.settrace(old_trace)
        signal.signal(signal.SIGALRM, old)
        if previous > 0:
            # Re-arm an outer timer with whatever it had left.
            remaining = previous - (time.monotonic() - started)
            signal.setitimer(signal.ITIMER_REAL, max(remaining, 0.001))
        del owner


def _call_with_trace(fn: Callable[[], T], timeout_sec: float, label: str) -> T:
    """Run fn() with a trace function enforcing the deadline (any thread)."""
    tracer = _deadline_tracer(time.monotonic() + timeout_sec, timeout_sec, label)
    old = sys.gettrace()
    sys.settrace(tracer)
    try:
        return fn()
    finally:
        sys.settrace(old)


def call_with_deadline(fn: Callable[[], T], timeout_sec: float, *, label: str = "Execution") -> T:
    """Run fn() and raise ``ExecutionTimeoutError`` once *timeout_sec* has elapsed."""
    if timeout_sec <= 0:
        raise ExecutionTimeoutError(_timeout_message(label, 0))
    use_signal = (
        hasattr(signal, "SIGALRM")
        and hasattr(signal, "setitimer")
        and threading.current_thread() is threading.main_thread()
    )
    if use_signal:
        return _call_with_alarm(fn, timeout_sec, label)
    return _call_with_trace(fn, timeout_sec, label)


class SandboxExecutor:
    """
    Evaluate compiled expressions inside a RenderContext's restricted globals.
    """

    def __init__(self, *, timeout_ms: int | None = None) -> None:
        self.timeout_ms = timeout_ms

    def _timeout_seconds(self, timeout_ms: int | None) -> float:
        if timeout_ms is None:
            timeout_ms = self.timeout_ms
        if timeout_ms is None:
            timeout_ms = settings.EXPRESSION_TIMEOUT_MS
        return timeout_ms / 1000.0

    async def execute(
        self,
        compiled: CompiledExpression,
        context: RenderContext,
        timeout_ms: int | None = None,
    ) -> Any:
        """
        Evaluate *compiled* and return its value.

        Raises ``ExecutionTimeoutError`` when the synchronous part or the
        awaited part exceeds the budget; any error raised by the expression
        itself propagates unchanged for the classifier.
        """
        timeout_sec = self._timeout_seconds(timeout_ms)
        g = context.globals()
        result = call_with_deadline(
            lambda: eval(compiled.code, g),  # noqa: S307 - RestrictedPython compiled code
            timeout_sec,
            label="Expression",
        )
        if inspect.isawaitable(result):
            _log.debug("awaiting async result of %r", compiled.source)
            result = await run_with_timeout(
                result,
                timeout_sec,
                token=CancellationToken(),
                label="Async execution",
            )
        return result
