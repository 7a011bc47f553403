"""Bounded, fixed-interval polling for convergence checks.

A predicate is an async callable returning a ``Check``:

- ``Retry(reason)``: not converged yet, poll again after ``interval``.
- ``Done()``: converged.
- ``PermanentSuccess(reason)``: already in the target state, stop now.
- ``PermanentFailure(error)``: unrecoverable, stop now and surface ``error``.

Example:
    from e2etests.poll import Done, Retry, SHORT, wait_until

    async def two_pods() -> Check:
        n = await count_pods()
        return Done() if n == 2 else Retry(f"want 2 pods found {n}")

    await wait_until(two_pods, SHORT, description="e2e-app pods")
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_delay,
    wait_fixed,
)

from e2etests.errors import WaitError, WaitTimeoutError

log = logger.bind(component="poll")


@dataclass(frozen=True, slots=True)
class Retry:
    reason: str


@dataclass(frozen=True, slots=True)
class Done:
    pass


@dataclass(frozen=True, slots=True)
class PermanentSuccess:
    reason: str = ""


@dataclass(frozen=True, slots=True)
class PermanentFailure:
    error: BaseException


type Check = Retry | Done | PermanentSuccess | PermanentFailure
type Predicate = Callable[[], Awaitable[Check]]
type Notify = Callable[[WaitError, float], None]


class Outcome(Enum):
    CONVERGED = "converged"
    TIMED_OUT = "timed-out"
    PERMANENT_ERROR = "permanent-error"


@dataclass(frozen=True, slots=True)
class WaitResult:
    outcome: Outcome
    attempts: int
    elapsed: float
    error: BaseException | None = None
    short_circuited: bool = False

    @property
    def converged(self) -> bool:
        return self.outcome is Outcome.CONVERGED


@dataclass(frozen=True, slots=True)
class Backoff:
    """Constant-interval polling budget, in seconds."""

    interval: float
    max_wait: float


SHORT = Backoff(interval=5.0, max_wait=5 * 60.0)
LONG = Backoff(interval=10.0, max_wait=30 * 60.0)
UPDATE = Backoff(interval=5 * 60.0, max_wait=60 * 60.0)


def log_notifier(description: str) -> Notify:
    """Notifier that logs each retry, like the default notifier of the suite."""

    def notify(err: WaitError, delay: float) -> None:
        log.debug(
            "{description} not converged: {err}, retrying in {delay:.1f}s",
            description=description, err=err, delay=delay,
        )

    return notify


async def poll(
    predicate: Predicate,
    *,
    interval: float,
    max_wait: float,
    notify: Notify | None = None,
    description: str = "condition",
) -> WaitResult:
    """Evaluate ``predicate`` every ``interval`` seconds until it settles.

    Args:
        predicate: Side-effect free async check returning a ``Check``.
        interval: Constant delay between evaluations.
        max_wait: Total budget. Once exceeded the result is ``TIMED_OUT``.
        notify: Called with the retry reason and the next delay on every
            ``Retry``. Exceptions raised by it are logged and ignored.
        description: Name of the condition, used in logs and errors.

    Returns:
        A ``WaitResult``. Exceptions raised by ``predicate`` itself are
        reported as ``PERMANENT_ERROR``; predicates translate transient
        failures into ``Retry`` themselves.

    Raises:
        asyncio.CancelledError: If the calling task is cancelled. The
            pending sleep is interrupted.
    """
    notify = notify or log_notifier(description)
    start = time.monotonic()
    attempts = 0
    settled: Check | None = None

    def before_sleep(state: RetryCallState) -> None:
        err = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else interval
        if not isinstance(err, WaitError):
            return
        try:
            notify(err, delay)
        except Exception as e:
            log.warning("Notifier for {description} raised: {e}", description=description, e=e)

    retrying = AsyncRetrying(
        stop=stop_after_delay(max_wait),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(WaitError),
        before_sleep=before_sleep,
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                attempts += 1
                check = await predicate()
                match check:
                    case Retry(reason=reason):
                        raise WaitError(reason)
                    case PermanentFailure(error=error):
                        raise error
                    case Done() | PermanentSuccess():
                        settled = check
                    case _:
                        raise TypeError(f"predicate returned {check!r}, expected a Check")
    except WaitError as e:
        return WaitResult(Outcome.TIMED_OUT, attempts, time.monotonic() - start, e)
    except Exception as e:
        return WaitResult(Outcome.PERMANENT_ERROR, attempts, time.monotonic() - start, e)

    return WaitResult(
        Outcome.CONVERGED,
        attempts,
        time.monotonic() - start,
        short_circuited=isinstance(settled, PermanentSuccess),
    )


async def wait_until(
    predicate: Predicate,
    backoff: Backoff,
    *,
    description: str,
    notify: Notify | None = None,
) -> WaitResult:
    """Raising form of ``poll``.

    Raises:
        WaitTimeoutError: The budget ran out before convergence.
        Exception: Whatever permanent error the predicate surfaced.
    """
    result = await poll(
        predicate,
        interval=backoff.interval,
        max_wait=backoff.max_wait,
        notify=notify,
        description=description,
    )
    match result.outcome:
        case Outcome.CONVERGED:
            return result
        case Outcome.TIMED_OUT:
            raise WaitTimeoutError(description, result.elapsed, result.error)
        case Outcome.PERMANENT_ERROR:
            assert result.error is not None
            raise result.error
