from __future__ import annotations

import asyncio

import pytest

from e2etests.errors import ErrorKind, NotFoundError, WaitError, WaitTimeoutError, classify
from e2etests.poll import (
    Backoff,
    Check,
    Done,
    Outcome,
    PermanentFailure,
    PermanentSuccess,
    Retry,
    poll,
    wait_until,
)

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


def counting(results: list[Check]):
    calls = {"n": 0}

    async def predicate() -> Check:
        i = calls["n"]
        calls["n"] += 1
        return results[min(i, len(results) - 1)]

    return predicate, calls


class TestPoll:
    @pytest.mark.asyncio
    async def test_converges_after_retries(self):
        predicate, calls = counting([Retry("a"), Retry("b"), Done()])
        notified: list[tuple[str, float]] = []

        result = await poll(
            predicate, interval=0.01, max_wait=5,
            notify=lambda err, delay: notified.append((str(err), delay)),
        )

        assert result.outcome is Outcome.CONVERGED
        assert result.converged
        assert result.attempts == 3
        assert calls["n"] == 3
        assert [reason for reason, _ in notified] == ["a", "b"]
        assert all(delay == pytest.approx(0.01) for _, delay in notified)

    @pytest.mark.asyncio
    async def test_done_on_first_evaluation_never_notifies(self):
        predicate, _ = counting([Done()])
        notified: list[WaitError] = []

        result = await poll(predicate, interval=0.01, max_wait=1, notify=lambda e, _: notified.append(e))

        assert result.converged
        assert result.attempts == 1
        assert not result.short_circuited
        assert notified == []

    @pytest.mark.asyncio
    async def test_times_out(self):
        predicate, calls = counting([Retry("pods not ready")])
        notified: list[tuple[str, float]] = []

        result = await poll(
            predicate, interval=0.02, max_wait=0.1,
            notify=lambda err, delay: notified.append((str(err), delay)),
        )

        assert result.outcome is Outcome.TIMED_OUT
        assert calls["n"] >= 2
        assert isinstance(result.error, WaitError)
        assert "pods not ready" in str(result.error)
        # at most one interval past the budget, plus scheduling slack
        assert 0.1 <= result.elapsed < 0.1 + 0.02 + 0.1
        # every retry but the final one is notified
        assert len(notified) == result.attempts - 1 == calls["n"] - 1
        assert all(reason == "pods not ready" for reason, _ in notified)
        assert all(delay == pytest.approx(0.02) for _, delay in notified)

    @pytest.mark.asyncio
    async def test_permanent_success_short_circuits(self):
        predicate, calls = counting([PermanentSuccess("already updated"), Retry("unreachable")])

        result = await poll(predicate, interval=0.01, max_wait=1)

        assert result.converged
        assert result.short_circuited
        assert calls["n"] == 1

    @pytest.mark.asyncio
    async def test_permanent_failure_stops_immediately(self):
        err = NotFoundError("master pod not found")
        predicate, calls = counting([PermanentFailure(err), Done()])

        result = await poll(predicate, interval=0.01, max_wait=1)

        assert result.outcome is Outcome.PERMANENT_ERROR
        assert result.error is err
        assert calls["n"] == 1

    @pytest.mark.asyncio
    async def test_predicate_exception_is_permanent(self):
        async def predicate() -> Check:
            raise RuntimeError("boom")

        result = await poll(predicate, interval=0.01, max_wait=1)

        assert result.outcome is Outcome.PERMANENT_ERROR
        assert isinstance(result.error, RuntimeError)
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_notifier_errors_are_ignored(self):
        predicate, _ = counting([Retry("a"), Done()])

        def notify(err: WaitError, delay: float) -> None:
            raise RuntimeError("notifier broke")

        result = await poll(predicate, interval=0.01, max_wait=1, notify=notify)

        assert result.converged

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_sleep(self):
        predicate, calls = counting([Retry("never")])

        task = asyncio.create_task(poll(predicate, interval=10, max_wait=60))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls["n"] == 1


class TestWaitUntil:
    @pytest.mark.asyncio
    async def test_returns_result_on_convergence(self):
        predicate, _ = counting([Retry("x"), Done()])

        result = await wait_until(predicate, Backoff(0.01, 1), description="two pods")

        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_raises_timeout(self):
        predicate, _ = counting([Retry("want 2 pods found 1")])

        with pytest.raises(WaitTimeoutError) as exc_info:
            await wait_until(predicate, Backoff(0.02, 0.1), description="two pods")

        assert "two pods" in str(exc_info.value)
        assert "want 2 pods found 1" in str(exc_info.value)
        assert classify(exc_info.value) is ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_reraises_permanent_error(self):
        err = NotFoundError("gone")
        predicate, _ = counting([PermanentFailure(err)])

        with pytest.raises(NotFoundError) as exc_info:
            await wait_until(predicate, Backoff(0.01, 1), description="master")

        assert exc_info.value is err
