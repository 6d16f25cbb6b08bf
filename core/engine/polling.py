"""Retry-with-backoff polling primitive.

Waiting for the browser is always expressed through :func:`poll_until`
rather than through the engine's own wait helpers, so every wait has an
explicit interval, bound and tri-state outcome.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PollOutcome(str, Enum):
    """Result of a polling loop."""

    READY = "ready"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass
class PollResult:
    """Outcome of :func:`poll_until` with the last probe value."""

    outcome: PollOutcome
    value: Any = None
    attempts: int = 0
    elapsed: float = 0.0
    error: Optional[BaseException] = None

    @property
    def ready(self) -> bool:
        return self.outcome is PollOutcome.READY

    @property
    def timed_out(self) -> bool:
        return self.outcome is PollOutcome.TIMED_OUT


async def poll_until(
    probe: Callable[[], Awaitable[Any]],
    *,
    interval: float,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    backoff: float = 1.0,
    max_interval: Optional[float] = None,
) -> PollResult:
    """
    Call ``probe`` until it returns a truthy value.

    Args:
        probe: Coroutine factory evaluated once per attempt
        interval: Delay between attempts in seconds
        timeout: Give up after this many seconds (optional)
        max_attempts: Give up after this many attempts (optional)
        backoff: Multiplier applied to the interval after each attempt
        max_interval: Upper bound for the interval when backing off

    Returns:
        PollResult that is READY with the probe's value, TIMED_OUT when a
        bound was reached, or ERROR carrying the exception the probe raised
    """
    if timeout is None and max_attempts is None:
        raise ValueError("poll_until needs a timeout or max_attempts bound")

    loop = asyncio.get_running_loop()
    started = loop.time()
    attempts = 0
    delay = interval
    value: Any = None

    while True:
        attempts += 1
        try:
            value = await probe()
        except Exception as e:
            logger.debug(f"Probe raised on attempt {attempts}: {e}")
            return PollResult(
                outcome=PollOutcome.ERROR,
                attempts=attempts,
                elapsed=loop.time() - started,
                error=e,
            )

        elapsed = loop.time() - started
        if value:
            return PollResult(PollOutcome.READY, value=value, attempts=attempts, elapsed=elapsed)

        if max_attempts is not None and attempts >= max_attempts:
            break
        if timeout is not None and elapsed + delay > timeout:
            break

        await asyncio.sleep(delay)
        delay = delay * backoff
        if max_interval is not None:
            delay = min(delay, max_interval)

    return PollResult(
        PollOutcome.TIMED_OUT,
        value=value,
        attempts=attempts,
        elapsed=loop.time() - started,
    )
