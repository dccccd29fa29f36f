"""
Bounded retry with exponential backoff, gated by the circuit breaker.

This is the only place provider calls are retried. Backoff uses an
awaitable sleep, so a waiting provider never blocks the others.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, TypeVar

from .circuit_breaker import CircuitBreakerRegistry
from .errors import CircuitOpenError, ProviderError, as_provider_error
from .models import Provider

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryAttempt:
    """One failed attempt. Transient, kept only for logging and inspection."""
    attempt: int
    delay_s: float
    error: ProviderError


class RetryExecutor:
    """
    Usage:
        executor = RetryExecutor(breakers)
        text = await executor.execute(Provider.OPENAI, lambda: client.complete(p, h))
    """

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        max_retries: int = 3,
        base_delay_s: float = 1.0,
        max_delay_s: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.breakers = breakers
        self.max_retries = max_retries
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s
        self._sleep = sleep

    @classmethod
    def from_config(cls, config, breakers: CircuitBreakerRegistry, **kwargs):
        return cls(
            breakers,
            max_retries=config.retry_max_retries,
            base_delay_s=config.retry_base_delay_s,
            max_delay_s=config.retry_max_delay_s,
            **kwargs,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given zero-based attempt, capped at max_delay_s."""
        return min(self.base_delay_s * (2 ** attempt), self.max_delay_s)

    async def execute(
        self,
        provider: Provider,
        operation: Callable[[], Awaitable[T]],
        attempts: Optional[List[RetryAttempt]] = None,
    ) -> T:
        """
        Run ``operation`` up to max_retries + 1 times.

        Raises CircuitOpenError as soon as the breaker refuses an attempt,
        otherwise the last classified ProviderError once attempts run out.
        Failed attempts are appended to ``attempts`` when a list is given.
        """
        last_error: Optional[ProviderError] = None

        for attempt in range(self.max_retries + 1):
            if not self.breakers.may_attempt(provider):
                breaker = self.breakers.get(provider)
                raise CircuitOpenError(
                    f"Circuit breaker OPEN for {provider.value}: "
                    f"{breaker.consecutive_failures} consecutive failures, "
                    f"probe in {breaker.time_until_probe():.0f}s",
                    provider=provider,
                )

            try:
                result = await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = as_provider_error(e, provider)
                self.breakers.record_failure(provider)
            else:
                self.breakers.record_success(provider)
                if attempt > 0:
                    logger.info(
                        f"✅ {provider.value} succeeded on attempt {attempt + 1}"
                    )
                return result

            if attempt < self.max_retries:
                delay = self.backoff_delay(attempt)
                if attempts is not None:
                    attempts.append(RetryAttempt(attempt, delay, last_error))
                logger.warning(
                    f"🔁 {provider.value} attempt {attempt + 1} failed "
                    f"[{last_error.code.value}]. Retrying in {delay:.1f}s: {last_error.detail}"
                )
                await self._sleep(delay)
            elif attempts is not None:
                attempts.append(RetryAttempt(attempt, 0.0, last_error))

        logger.error(
            f"❌ {provider.value} exhausted {self.max_retries + 1} attempts: {last_error.detail}"
        )
        raise last_error
