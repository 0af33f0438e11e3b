"""Bounded polling with configurable backoff.

There is no cancellation primitive: a wait is bounded only by its attempt
count. The sleep function is injectable so tests can run polls instantly
and inspect the delays that would have been used.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class PollPolicy:
    """How long and how often to poll.

    Attributes:
        interval: Seconds before the first check
        max_attempts: Number of checks before giving up
        backoff: Multiplier applied to the interval after each check
        max_interval: Upper bound for the grown interval
    """

    interval: float = 3.0
    max_attempts: int = 10
    backoff: float = 1.0
    max_interval: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1: {self.max_attempts}")
        if self.interval < 0:
            raise ValueError(f"interval must be non-negative: {self.interval}")
        if self.backoff < 1.0:
            raise ValueError(f"backoff must be >= 1.0: {self.backoff}")

    def delays(self) -> list[float]:
        """Sleep durations preceding each attempt."""
        out = []
        delay = self.interval
        for _ in range(self.max_attempts):
            out.append(delay)
            delay = delay * self.backoff
            if self.max_interval is not None:
                delay = min(delay, self.max_interval)
        return out

    @property
    def budget_seconds(self) -> float:
        return sum(self.delays())


@dataclass(frozen=True)
class PollResult:
    satisfied: bool
    attempts: int
    waited_seconds: float


async def await_predicate(
    predicate: Callable[[], Awaitable[bool]],
    policy: PollPolicy,
    sleep: SleepFunc = asyncio.sleep,
    description: str = "condition",
) -> PollResult:
    """Sleep, check, repeat until ``predicate`` holds or attempts run out.

    Exceptions raised by ``predicate`` propagate to the caller.
    """
    waited = 0.0
    for attempt, delay in enumerate(policy.delays(), start=1):
        await sleep(delay)
        waited += delay
        if await predicate():
            logger.debug(f"{description} satisfied after {attempt} attempt(s), {waited:.1f}s")
            return PollResult(True, attempt, waited)

    logger.debug(f"{description} not satisfied after {policy.max_attempts} attempts")
    return PollResult(False, policy.max_attempts, waited)
