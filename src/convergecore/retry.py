"""
Bounded polling for eventually-consistent conditions.

A probe is sampled immediately and then once per interval until it succeeds
or the timeout elapses. On expiry the caller gets the last observed failure
(e.g. "3 of 5 workers ready"), not a generic timeout.

Example:
    engine = RetryEngine()
    outcome = engine.run(ReadyWorkersProbe(reader, cluster, 5), timeout=180, interval=10)
    if not outcome.succeeded:
        print(outcome.last_error)

    # Or raise RetryTimeoutError chained from the last failure
    state = engine.run(probe, timeout=30, interval=0.25).unwrap()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Protocol, Type, TypeVar, Union

from convergecore.errors import RetryTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

# Absorbs float error in k * interval <= timeout
_EPSILON = 1e-9


class Probe(Protocol[T_co]):
    """A single-method condition check. Raise to signal "not yet"."""

    def probe(self) -> T_co:
        ...


ProbeLike = Union[Probe[T], Callable[[], T]]


@dataclass
class RetryOutcome(Generic[T]):
    """Tagged result of a retry run: the success value or the last failure."""

    succeeded: bool
    value: Optional[T] = None
    last_error: Optional[BaseException] = None
    attempts: int = 0
    elapsed: float = 0.0
    failures: List[BaseException] = field(default_factory=list)

    def unwrap(self, error_cls: Type[RetryTimeoutError] = RetryTimeoutError, **extra: Any) -> T:
        """Return the value, or raise ``error_cls`` chained from the last failure."""
        if self.succeeded:
            return self.value  # type: ignore[return-value]
        raise error_cls(self.last_error, self.attempts, self.elapsed, **extra) from self.last_error


def describe_probe(probe: Any) -> str:
    name = getattr(probe, "name", None)
    if name:
        return str(name)
    if hasattr(probe, "probe"):
        return type(probe).__name__
    return getattr(probe, "__name__", repr(probe))


def _invoke(probe: Any) -> Any:
    if hasattr(probe, "probe"):
        return probe.probe()
    return probe()


class RetryEngine:
    """
    Blocking poll loop with an explicit deadline.

    Attempt ``k`` (0-based) is scheduled at ``start + k * interval`` and only
    runs while ``k * interval <= timeout``, so a probe is invoked at most
    ``floor(timeout / interval) + 1`` times. A probe that overruns the
    deadline ends the run after that attempt.

    Args:
        clock: Monotonic time source in seconds
        sleep: Blocking sleep used between attempts
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep

    def run(self, probe: ProbeLike[T], timeout: float, interval: float) -> RetryOutcome[T]:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if timeout < 0:
            raise ValueError(f"timeout must not be negative, got {timeout}")

        name = describe_probe(probe)
        start = self._clock()
        attempts = 0
        failures: List[BaseException] = []

        while True:
            attempts += 1
            try:
                value = _invoke(probe)
            except Exception as e:
                failures.append(e)
                logger.debug(f"{name}: attempt {attempts} failed: {e}")
            else:
                elapsed = self._clock() - start
                logger.debug(f"{name}: succeeded on attempt {attempts} after {elapsed:.2f}s")
                return RetryOutcome(
                    succeeded=True,
                    value=value,
                    attempts=attempts,
                    elapsed=elapsed,
                    failures=failures,
                )

            next_offset = attempts * interval
            if next_offset > timeout + _EPSILON:
                break
            now = self._clock()
            if now - start > timeout + _EPSILON:
                break
            delay = start + next_offset - now
            if delay > 0:
                self._sleep(delay)

        elapsed = self._clock() - start
        last_error = failures[-1]
        logger.warning(
            f"{name}: gave up after {attempts} attempts in {elapsed:.2f}s: {last_error}"
        )
        return RetryOutcome(
            succeeded=False,
            last_error=last_error,
            attempts=attempts,
            elapsed=elapsed,
            failures=failures,
        )


def retry(probe: ProbeLike[T], timeout: float, interval: float) -> RetryOutcome[T]:
    """Run ``probe`` on a default RetryEngine with real time."""
    return RetryEngine().run(probe, timeout=timeout, interval=interval)
