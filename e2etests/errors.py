"""Error kinds raised by e2etests.

Every error carries an ``ErrorKind``. Callers never compare error objects by
identity; they ask ``classify()`` (or one of the ``is_*`` helpers) which walks
the ``__cause__``/``__context__`` chain and reports the kind of the deepest
e2etests error it finds.

Example:
    try:
        version = await provider.next_version()
    except Exception as e:
        if is_version_not_found(e):
            return SequenceResult.SKIPPED
        raise
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    INVALID_CONFIG = "invalid-config"
    NOT_FOUND = "not-found"
    TOO_MANY_RESULTS = "too-many-results"
    WAIT = "wait"
    TIMEOUT = "timeout"
    VERSION_NOT_FOUND = "version-not-found"
    OVERLAP_VIOLATION = "overlap-violation"
    SCALING = "scaling"
    STEP = "step"
    UNKNOWN = "unknown"


class E2EError(Exception):
    """Base class for all e2etests errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class InvalidConfigError(E2EError):
    """A required configuration field is missing or malformed."""

    kind = ErrorKind.INVALID_CONFIG


class NotFoundError(E2EError):
    """A selector matched no resource where exactly one was expected."""

    kind = ErrorKind.NOT_FOUND


class TooManyResultsError(E2EError):
    """A selector matched more than one resource where exactly one was expected."""

    kind = ErrorKind.TOO_MANY_RESULTS


class WaitError(E2EError):
    """Condition not satisfied yet - retry."""

    kind = ErrorKind.WAIT


class WaitTimeoutError(E2EError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, description: str, elapsed: float, last_error: BaseException | None = None) -> None:
        self.description = description
        self.elapsed = elapsed
        self.last_error = last_error
        msg = f"Timeout waiting for {description} after {elapsed:.1f}s"
        if last_error is not None:
            msg += f" (last: {last_error})"
        super().__init__(msg)


class VersionNotFoundError(E2EError):
    """No version bundle exists for the queried component and type."""

    kind = ErrorKind.VERSION_NOT_FOUND


class OverlapViolationError(E2EError):
    kind = ErrorKind.OVERLAP_VIOLATION

    def __init__(self, cluster: str, subnet: str, other_cluster: str, other_subnet: str) -> None:
        self.cluster = cluster
        self.subnet = subnet
        self.other_cluster = other_cluster
        self.other_subnet = other_subnet
        super().__init__(
            f"subnet {subnet} of cluster {cluster} overlaps "
            f"subnet {other_subnet} of cluster {other_cluster}"
        )


class ScalingError(E2EError):
    """Worker count after a scaling round trip differs from the baseline."""

    kind = ErrorKind.SCALING


class StepError(E2EError):
    """A sequence step failed; the underlying error is the ``__cause__``."""

    kind = ErrorKind.STEP

    def __init__(self, step: str, cause: BaseException) -> None:
        self.step = step
        super().__init__(f"step {step!r} failed: {cause}")


def _chain(err: BaseException) -> list[BaseException]:
    seen: list[BaseException] = []
    current: BaseException | None = err
    while current is not None and not any(current is s for s in seen):
        seen.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            current = None
        else:
            current = current.__context__
    return seen


def classify(err: BaseException) -> ErrorKind:
    """Return the kind of the deepest e2etests error in ``err``'s chain."""
    kinds = [e.kind for e in _chain(err) if isinstance(e, E2EError) and e.kind is not ErrorKind.STEP]
    return kinds[-1] if kinds else ErrorKind.UNKNOWN


def is_invalid_config(err: BaseException) -> bool:
    return classify(err) is ErrorKind.INVALID_CONFIG


def is_not_found(err: BaseException) -> bool:
    return classify(err) is ErrorKind.NOT_FOUND


def is_too_many_results(err: BaseException) -> bool:
    return classify(err) is ErrorKind.TOO_MANY_RESULTS


def is_timeout(err: BaseException) -> bool:
    return classify(err) is ErrorKind.TIMEOUT


def is_version_not_found(err: BaseException) -> bool:
    return classify(err) is ErrorKind.VERSION_NOT_FOUND


def is_overlap_violation(err: BaseException) -> bool:
    return classify(err) is ErrorKind.OVERLAP_VIOLATION


def require(value: object, field: str, owner: str) -> None:
    """Raise InvalidConfigError when a required config field is empty."""
    if value is None or value == "":
        raise InvalidConfigError(f"{owner}.{field} must not be empty")
