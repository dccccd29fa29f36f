"""
Provider Circuit Breakers
==========================
Stops calling a provider that keeps failing until it has had time to recover.

State Machine:
  CLOSED    ──[failures >= threshold]──────►  OPEN
  OPEN      ──[cooldown elapsed, checked]──►  HALF_OPEN
  HALF_OPEN ──[success]────────────────────►  CLOSED
  HALF_OPEN ──[failure]────────────────────►  OPEN

Each provider gets its own breaker. The registry is constructed explicitly
and injected, so every orchestrator (and every test) owns its own state.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from .models import Provider

logger = logging.getLogger(__name__)


class CBState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerStats:
    """Lifetime counters, reported by status()."""
    total_calls: int = 0
    total_successes: int = 0
    total_failures: int = 0
    total_rejections: int = 0       # may_attempt() answered False
    trips: int = 0                  # Transitions into OPEN

    def to_dict(self) -> dict:
        return {
            "total_calls": self.total_calls,
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "trips": self.trips,
            "success_rate": (
                round(self.total_successes / self.total_calls, 3)
                if self.total_calls > 0 else 1.0
            ),
        }


class CircuitBreaker:
    """
    Per-provider circuit breaker.

    Usage:
        cb = CircuitBreaker(Provider.OPENAI, failure_threshold=3)
        if cb.may_attempt():
            ...
            cb.record_success()
    """

    def __init__(
        self,
        provider: Provider,
        failure_threshold: int = 3,
        cooldown_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.failure_threshold = failure_threshold
        self.cooldown_s = cooldown_s
        self._clock = clock

        self._state = CBState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: Optional[float] = None
        self._stats = CircuitBreakerStats()
        self._lock = threading.Lock()

    @property
    def state(self) -> CBState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_failure_time(self) -> Optional[float]:
        return self._last_failure_time

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    def may_attempt(self) -> bool:
        """Can a call go through right now? May move OPEN → HALF_OPEN."""
        with self._lock:
            if self._state == CBState.CLOSED:
                return True
            if self._state == CBState.HALF_OPEN:
                # Single-probe semantics are advisory; concurrent probes are fine.
                return True
            elapsed = (
                self._clock() - self._last_failure_time
                if self._last_failure_time is not None else float("inf")
            )
            if elapsed > self.cooldown_s:
                self._transition(CBState.HALF_OPEN)
                return True
            self._stats.total_rejections += 1
            return False

    def record_success(self) -> None:
        """Provider answered: clear the count and close."""
        with self._lock:
            self._stats.total_calls += 1
            self._stats.total_successes += 1
            self._consecutive_failures = 0
            if self._state != CBState.CLOSED:
                self._transition(CBState.CLOSED)

    def record_failure(self) -> None:
        """Provider failed: count it and trip when over threshold or probing."""
        with self._lock:
            self._stats.total_calls += 1
            self._stats.total_failures += 1
            self._consecutive_failures += 1
            self._last_failure_time = self._clock()

            if self._state == CBState.HALF_OPEN:
                self._transition(CBState.OPEN)
            elif (
                self._state == CBState.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                self._transition(CBState.OPEN)
            else:
                logger.debug(
                    f"Circuit breaker [{self.provider.value}] failure count: "
                    f"{self._consecutive_failures}"
                )

    def _transition(self, new_state: CBState) -> None:
        old = self._state
        self._state = new_state
        if new_state == CBState.OPEN:
            self._stats.trips += 1
        logger.info(
            f"🔌 Circuit breaker [{self.provider.value}]: {old.value} → {new_state.value} "
            f"(failures={self._consecutive_failures})"
        )

    def time_until_probe(self) -> float:
        if self._state != CBState.OPEN or self._last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_time
        return max(0.0, self.cooldown_s - elapsed)

    def reset(self) -> None:
        """Force CLOSED and forget past failures."""
        with self._lock:
            self._consecutive_failures = 0
            self._last_failure_time = None
            if self._state != CBState.CLOSED:
                self._transition(CBState.CLOSED)
        logger.info(f"🔄 Circuit breaker [{self.provider.value}] manually reset")

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "state": self._state.value,
            "failure_count": self._consecutive_failures,
            "last_failure_time": self._last_failure_time,
            "stats": self._stats.to_dict(),
            "config": {
                "failure_threshold": self.failure_threshold,
                "cooldown_s": self.cooldown_s,
            },
        }


class CircuitBreakerRegistry:
    """
    Manages circuit breakers for all providers.
    One breaker per provider, created lazily under a lock.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._breakers: Dict[Provider, CircuitBreaker] = {}
        self._failure_threshold = failure_threshold
        self._cooldown_s = cooldown_s
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config, clock: Callable[[], float] = time.monotonic):
        return cls(
            failure_threshold=config.cb_failure_threshold,
            cooldown_s=config.cb_cooldown_s,
            clock=clock,
        )

    def get(self, provider: Provider) -> CircuitBreaker:
        """Get or create the breaker for a provider."""
        provider = Provider.parse(provider)
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                breaker = CircuitBreaker(
                    provider,
                    failure_threshold=self._failure_threshold,
                    cooldown_s=self._cooldown_s,
                    clock=self._clock,
                )
                self._breakers[provider] = breaker
            return breaker

    def may_attempt(self, provider: Provider) -> bool:
        return self.get(provider).may_attempt()

    def record_success(self, provider: Provider) -> None:
        self.get(provider).record_success()

    def record_failure(self, provider: Provider) -> None:
        self.get(provider).record_failure()

    def state(self, provider: Provider) -> CBState:
        return self.get(provider).state

    def status(self, providers: Iterable[Provider] = tuple(Provider)) -> Dict[str, dict]:
        """Snapshot of every provider's breaker (initializing missing ones)."""
        return {p.value: self.get(p).to_dict() for p in providers}

    def reset(self, provider: Provider) -> None:
        self.get(provider).reset()

    def reset_all(self) -> None:
        """Force every known breaker CLOSED."""
        with self._lock:
            breakers = list(self._breakers.values())
        for cb in breakers:
            cb.reset()
