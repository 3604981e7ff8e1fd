"""Named waits and settle delays.

The portal renders most changes client-side without a completion signal,
so the scraper pauses after UI-altering actions. Every pause has a name
and a configured duration so the state machine reads as "settle after X"
rather than as bare sleeps, and tests can swap in a fake sleep.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .exceptions import WaitTimeout

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[Any]]


class Pacing:
    """Named settle delays backed by a configurable table."""

    def __init__(
        self,
        delays_ms: dict[str, int],
        sleep: Optional[Sleep] = None,
        default_ms: int = 1000,
    ) -> None:
        self._delays_ms = dict(delays_ms)
        self.sleep = sleep or asyncio.sleep
        self._default_ms = default_ms

    def duration_ms(self, name: str) -> int:
        return self._delays_ms.get(name, self._default_ms)

    async def settle(self, name: str) -> None:
        """Pause for the delay registered under name."""
        delay_ms = self.duration_ms(name)
        logger.debug("settling", wait=name, delay_ms=delay_ms)
        await self.sleep(delay_ms / 1000)

    async def pause_ms(self, delay_ms: int) -> None:
        await self.sleep(delay_ms / 1000)


async def wait_with_fallback(
    name: str,
    condition: Callable[[], Awaitable[Any]],
    timeout_ms: int,
    fallback: Optional[Callable[[], Awaitable[Any]]] = None,
) -> Any:
    """Wait for condition for up to timeout_ms; on timeout run fallback.

    Args:
        name: Name of the condition, used in logs and errors.
        condition: Zero-argument coroutine factory that completes when the
            condition holds.
        timeout_ms: Upper bound on the wait.
        fallback: Coroutine factory run on timeout. Its result is returned.

    Returns:
        The condition's result, or the fallback's result after a timeout.

    Raises:
        WaitTimeout: On timeout when no fallback is given.
    """
    try:
        return await asyncio.wait_for(condition(), timeout=timeout_ms / 1000)
    except (asyncio.TimeoutError, PlaywrightTimeoutError):
        logger.info("wait_timed_out", wait=name, timeout_ms=timeout_ms)
        if fallback is None:
            raise WaitTimeout(name, timeout_ms) from None
        return await fallback()
