"""Unit tests for core.cancellation: signal-once token and async timeout race."""

import asyncio

import pytest

from promptbox.core.cancellation import (
    REASON_COMPLETED,
    REASON_TIMEOUT,
    CancellationToken,
    run_with_timeout,
)
from promptbox.core.errors import ExecutionTimeoutError


class TestCancellationToken:
    def test_first_cancel_wins(self) -> None:
        token = CancellationToken()
        assert token.cancel(REASON_TIMEOUT) is True
        assert token.cancel(REASON_COMPLETED) is False
        assert token.cancelled
        assert token.reason == REASON_TIMEOUT

    def test_listeners_called_once(self) -> None:
        token = CancellationToken()
        seen: list[str] = []
        token.add_listener(seen.append)
        token.cancel()
        token.cancel()
        assert seen == [REASON_TIMEOUT]

    def test_removed_listener_not_called(self) -> None:
        token = CancellationToken()
        seen: list[str] = []
        remove = token.add_listener(seen.append)
        remove()
        remove()
        token.cancel()
        assert seen == []

    def test_listener_added_after_cancel_runs_immediately(self) -> None:
        token = CancellationToken()
        token.cancel("stop")
        seen: list[str] = []
        token.add_listener(seen.append)
        assert seen == ["stop"]

    def test_failing_listener_does_not_block_others(self) -> None:
        token = CancellationToken()
        seen: list[str] = []

        def bad(_reason: str) -> None:
            raise RuntimeError("boom")

        token.add_listener(bad)
        token.add_listener(seen.append)
        assert token.cancel() is True
        assert seen == [REASON_TIMEOUT]


class TestRunWithTimeout:
    def test_returns_result(self) -> None:
        async def work() -> int:
            await asyncio.sleep(0)
            return 7

        assert asyncio.run(run_with_timeout(work(), 1.0)) == 7

    def test_success_marks_token_completed(self) -> None:
        token = CancellationToken()

        async def work() -> str:
            return "ok"

        asyncio.run(run_with_timeout(work(), 1.0, token=token))
        assert token.reason == REASON_COMPLETED

    def test_timeout_raises_and_cancels_work(self) -> None:
        token = CancellationToken()
        state = {"cancelled": False}

        async def never() -> None:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                state["cancelled"] = True
                raise

        with pytest.raises(ExecutionTimeoutError, match="timed out after 50ms"):
            asyncio.run(run_with_timeout(never(), 0.05, token=token, label="Fetch"))
        assert token.reason == REASON_TIMEOUT
        assert state["cancelled"] is True

    def test_error_propagates_and_releases_timer(self) -> None:
        token = CancellationToken()

        async def fail() -> None:
            raise ValueError("nope")

        async def main() -> None:
            with pytest.raises(ValueError, match="nope"):
                await run_with_timeout(fail(), 0.05, token=token)
            # Timer was cancelled: the token stays "completed" after the deadline passes.
            await asyncio.sleep(0.1)

        asyncio.run(main())
        assert token.reason == REASON_COMPLETED
