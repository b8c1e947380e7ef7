"""
Exponential backoff with jitter for artifact persistence.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ...config import WalletSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    jitter: float = 0.25

    @classmethod
    def from_settings(cls, settings: WalletSettings) -> "RetryPolicy":
        return cls(
            attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )

    def backoff(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based): capped exponential plus jitter"""
        delay = min(self.max_delay, self.base_delay * (2 ** attempt))
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    async def run(self,
                  operation: Callable[[], Awaitable[T]],
                  retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                  description: str = "operation",
                  sleep: Optional[Callable[[float], Awaitable[None]]] = None) -> T:
        """
        Await `operation` until it succeeds or the attempts are used up.

        Args:
            operation: zero-argument coroutine factory, called once per attempt
            retry_on: exception types that trigger another attempt
            description: label used in log messages
            sleep: awaitable sleep, asyncio.sleep by default

        Returns:
            The result of the first successful attempt

        Raises:
            The last exception once every attempt has failed
        """
        sleep = sleep or asyncio.sleep
        for attempt in range(self.attempts):
            try:
                return await operation()
            except retry_on as e:
                if attempt == self.attempts - 1:
                    logger.error(f"❌ {description} failed after {self.attempts} attempts: {e}")
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt + 1}/{self.attempts}): {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                await sleep(delay)
        raise RuntimeError("RetryPolicy.attempts must be at least 1")
