"""Bounded polling until an OpenStack resource reaches a target state.

A poll repeatedly calls a resource-specific refresh function and classifies
the state it reports:

- a target state ends the poll successfully,
- a failure state ends it unsuccessfully,
- anything else (pending or unknown) means "keep waiting".

Errors raised by the refresh function are fatal and returned as-is, with two
exceptions that only apply while waiting for a deletion: "not found" means the
resource is gone, and "conflict" means it is still in use.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from openstack.exceptions import ConflictException, ResourceNotFound

from metrics import POLL_ATTEMPTS, POLL_DURATION, POLL_OUTCOMES
from models import (
    PollTimeoutError,
    PollValidationError,
    ResourceNotFoundError,
    UnexpectedStateError,
)

logger = logging.getLogger(__name__)

# Floor for the sleep between refresh calls (seconds)
MIN_POLL_INTERVAL = 0.1

DELETED = "DELETED"

RefreshFunc = Callable[[str], str]


def _error_chain(exc: BaseException | None) -> Iterable[BaseException]:
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__


def is_not_found(exc: BaseException) -> bool:
    """Check whether an error means the remote resource does not exist."""
    return any(
        isinstance(e, (ResourceNotFound, ResourceNotFoundError))
        or getattr(e, "status_code", None) == 404
        for e in _error_chain(exc)
    )


def is_conflict(exc: BaseException) -> bool:
    """Check whether an error means the resource is busy (HTTP 409)."""
    return any(
        isinstance(e, ConflictException) or getattr(e, "status_code", None) == 409
        for e in _error_chain(exc)
    )


@dataclass(frozen=True)
class PollRequest:
    """What to poll, how often, and for how long.

    Durations are in seconds. State sets accept any iterable of strings and
    are stored as frozensets.
    """

    resource_id: str
    target: frozenset[str]
    refresh: RefreshFunc = field(repr=False)
    pending: frozenset[str] = frozenset()
    failure: frozenset[str] = frozenset()
    delay: float = 0.0
    interval: float = 3.0
    timeout: float = 600.0
    backoff: float = 1.0
    max_interval: float = 10.0
    delete_mode: bool = False
    kind: str = "resource"

    def __post_init__(self) -> None:
        for name in ("target", "pending", "failure"):
            value = getattr(self, name)
            if isinstance(value, str):
                value = (value,)
            object.__setattr__(self, name, frozenset(value))

    def validate(self) -> None:
        """Raise PollValidationError if the request cannot be polled."""
        if not isinstance(self.resource_id, str) or not self.resource_id:
            raise PollValidationError("resource_id must be a non-empty string")
        if not self.target:
            raise PollValidationError("target states must not be empty")
        overlap = self.target & self.pending
        if overlap:
            raise PollValidationError(
                f"states cannot be both pending and target: {sorted(overlap)}"
            )
        overlap = self.target & self.failure
        if overlap:
            raise PollValidationError(
                f"states cannot be both failure and target: {sorted(overlap)}"
            )
        if not callable(self.refresh):
            raise PollValidationError("refresh must be callable")
        if self.timeout <= 0:
            raise PollValidationError("timeout must be positive")
        if self.interval <= 0:
            raise PollValidationError("interval must be positive")
        if self.delay < 0:
            raise PollValidationError("delay must not be negative")
        if self.backoff < 1:
            raise PollValidationError("backoff must be at least 1")


@dataclass(frozen=True)
class PollOutcome:
    """Result of a single poll call."""

    final_state: str
    succeeded: bool
    err: Exception | None = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def timed_out(self) -> bool:
        return isinstance(self.err, PollTimeoutError)

    def raise_for_error(self) -> None:
        """Raise the stored error, if any."""
        if self.err is not None:
            raise self.err


def poll(
    req: PollRequest,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollOutcome:
    """Block until the resource reaches a target state, fails, or time runs out.

    Only PollValidationError is raised; every other failure is reported in
    the returned outcome.
    """
    req.validate()

    start = clock()
    attempts = 0
    last_state = ""
    wait = max(req.interval, MIN_POLL_INTERVAL)
    ceiling = max(req.max_interval, wait)

    def finish(
        state: str, succeeded: bool, err: Exception | None, result: str
    ) -> PollOutcome:
        elapsed = clock() - start
        POLL_OUTCOMES.labels(kind=req.kind, outcome=result).inc()
        POLL_DURATION.labels(kind=req.kind).observe(elapsed)
        return PollOutcome(
            final_state=state,
            succeeded=succeeded,
            err=err,
            attempts=attempts,
            elapsed=elapsed,
        )

    def timed_out() -> PollOutcome:
        logger.warning(
            "Timed out waiting for %s %s to reach %s after %.1fs (last state: %s)",
            req.kind,
            req.resource_id,
            sorted(req.target),
            clock() - start,
            last_state or "unknown",
        )
        err = PollTimeoutError(req.resource_id, req.target, req.timeout, last_state)
        return finish(last_state, False, err, "timeout")

    logger.debug(
        "Waiting for %s %s to reach %s (timeout=%ss)",
        req.kind,
        req.resource_id,
        sorted(req.target),
        req.timeout,
    )

    if req.delay > 0:
        sleep(min(req.delay, req.timeout))

    while True:
        if clock() - start >= req.timeout:
            return timed_out()

        attempts += 1
        POLL_ATTEMPTS.labels(kind=req.kind).inc()

        try:
            state = req.refresh(req.resource_id)
        except Exception as e:
            if req.delete_mode and is_not_found(e):
                logger.info("%s %s is gone", req.kind, req.resource_id)
                return finish(DELETED, True, None, "success")
            if req.delete_mode and is_conflict(e):
                logger.debug(
                    "%s %s is still in use, waiting: %s", req.kind, req.resource_id, e
                )
            else:
                logger.warning(
                    "Refreshing %s %s failed: %s", req.kind, req.resource_id, e
                )
                return finish(last_state, False, e, "error")
        else:
            last_state = state
            logger.debug(
                "%s %s is %s (attempt %d)", req.kind, req.resource_id, state, attempts
            )
            if state in req.target:
                logger.info("%s %s reached %s", req.kind, req.resource_id, state)
                return finish(state, True, None, "success")
            if state in req.failure:
                logger.warning(
                    "%s %s entered failure state %s", req.kind, req.resource_id, state
                )
                err = UnexpectedStateError(req.resource_id, state)
                return finish(state, False, err, "failed_state")
            if state not in req.pending:
                logger.debug(
                    "%s %s reported unlisted state %s, still waiting",
                    req.kind,
                    req.resource_id,
                    state,
                )

        remaining = req.timeout - (clock() - start)
        if remaining <= 0:
            return timed_out()
        sleep(min(wait, remaining))
        wait = min(wait * req.backoff, ceiling)


def wait_for_state(
    req: PollRequest,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollOutcome:
    """Poll and raise the outcome's error if the poll did not succeed."""
    outcome = poll(req, sleep=sleep, clock=clock)
    if not outcome.succeeded:
        outcome.raise_for_error()
    return outcome
