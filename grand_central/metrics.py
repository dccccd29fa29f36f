"""
Fan-out Metrics
================
In-memory counters and latency distributions for provider calls,
fallbacks and the pattern engine. Nothing is exported on its own; the
caller decides whether to persist or expose ``summary()``.
"""

import threading
import time
from collections import Counter as _Tally, deque
from datetime import datetime, timezone
from typing import Any, Dict

import numpy as np


class Counter:
    """Labelled counter; the total is the sum over labels."""

    def __init__(self, name: str):
        self.name = name
        self._tally: _Tally = _Tally()
        self._lock = threading.Lock()

    def inc(self, label: str = "all", amount: int = 1):
        with self._lock:
            self._tally[label] += amount

    @property
    def value(self) -> int:
        with self._lock:
            return sum(self._tally.values())

    def get(self, label: str) -> int:
        with self._lock:
            return self._tally.get(label, 0)

    def by_label(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._tally.most_common())

    def to_dict(self) -> dict:
        return {"name": self.name, "total": self.value, "by_label": self.by_label()}


class Histogram:
    """Sliding window of samples (latencies in ms)."""

    def __init__(self, name: str, window: int = 500):
        self.name = name
        self._window: deque = deque(maxlen=window)

    def observe(self, sample: float):
        self._window.append(float(sample))

    @property
    def count(self) -> int:
        return len(self._window)

    def quantile(self, q: float) -> float:
        if not self._window:
            return 0.0
        return float(np.quantile(np.fromiter(self._window, dtype=float), q))

    @property
    def avg(self) -> float:
        return float(np.mean(self._window)) if self._window else 0.0

    @property
    def p50(self) -> float:
        return self.quantile(0.5)

    @property
    def p95(self) -> float:
        return self.quantile(0.95)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "count": self.count,
            "avg": round(self.avg, 3),
            "p50": round(self.p50, 3),
            "p95": round(self.p95, 3),
            "max": round(max(self._window), 3) if self._window else 0.0,
        }


class MetricsCollector:
    """
    Counters (by label):
      llm_calls / llm_failures     provider
      fallbacks                    "requested->served"
      degraded_outcomes            requested provider
      patterns_detected            topic
      suggestions                  kind
    Histograms (ms):
      dispatch_latency             whole fan-out
      llm_latency                  one provider chain hop
    """

    def __init__(self, buffer_size: int = 1000):
        self._started = time.monotonic()

        self.llm_calls = Counter("llm_calls_total")
        self.llm_failures = Counter("llm_failures_total")
        self.fallbacks = Counter("fallbacks_total")
        self.degraded_outcomes = Counter("degraded_outcomes_total")
        self.patterns_detected = Counter("patterns_detected_total")
        self.suggestions = Counter("suggestions_total")

        self.dispatch_latency = Histogram("dispatch_latency_ms", buffer_size)
        self.llm_latency = Histogram("llm_latency_ms", buffer_size)

        self._last_dispatches: deque = deque(maxlen=10)

    # ── Recording ─────────────────────────────────────────────────

    def record_llm_call(self, provider: str, latency_ms: float, success: bool):
        self.llm_calls.inc(provider)
        if not success:
            self.llm_failures.inc(provider)
        self.llm_latency.observe(latency_ms)

    def record_fallback(self, requested: str, served_by: str):
        self.fallbacks.inc(f"{requested}->{served_by}")

    def record_degraded(self, provider: str):
        self.degraded_outcomes.inc(provider)

    def record_dispatch(self, providers: int, degraded: int, latency_ms: float):
        self.dispatch_latency.observe(latency_ms)
        self._last_dispatches.append({
            "at": datetime.now(timezone.utc).isoformat(),
            "providers": providers,
            "degraded": degraded,
            "latency_ms": round(latency_ms, 1),
        })

    def record_pattern(self, topic: str):
        self.patterns_detected.inc(topic)

    def record_suggestion(self, kind: str):
        self.suggestions.inc(kind)

    # ── Reporting ─────────────────────────────────────────────────

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started

    @property
    def llm_success_rate(self) -> float:
        """Percentage of provider calls that returned content."""
        calls = self.llm_calls.value
        if not calls:
            return 100.0
        return round(100.0 * (calls - self.llm_failures.value) / calls, 1)

    def summary(self) -> Dict[str, Any]:
        counters = (
            self.llm_calls, self.llm_failures, self.fallbacks,
            self.degraded_outcomes, self.patterns_detected, self.suggestions,
        )
        return {
            "uptime_seconds": round(self.uptime_seconds, 1),
            "llm_success_rate": self.llm_success_rate,
            "counters": {c.name: c.to_dict() for c in counters},
            "latency": {
                h.name: h.to_dict() for h in (self.dispatch_latency, self.llm_latency)
            },
            "last_dispatches": list(self._last_dispatches),
        }

    def health_summary(self) -> Dict[str, Any]:
        """Small payload for a health check."""
        return {
            "uptime_s": round(self.uptime_seconds),
            "llm_calls": self.llm_calls.value,
            "llm_success_rate": self.llm_success_rate,
            "dispatch_p50_ms": round(self.dispatch_latency.p50, 1),
            "dispatch_p95_ms": round(self.dispatch_latency.p95, 1),
            "patterns_detected": self.patterns_detected.value,
        }
