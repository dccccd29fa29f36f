from concurrent.futures import ThreadPoolExecutor

import pytest

from grand_central.metrics import Counter, Histogram, MetricsCollector


def test_counter_totals_by_label():
    c = Counter("calls")
    c.inc("openai")
    c.inc("openai")
    c.inc("grok", amount=3)
    assert c.value == 5
    assert c.get("openai") == 2
    assert c.get("claude") == 0
    assert c.to_dict() == {"name": "calls", "total": 5, "by_label": {"grok": 3, "openai": 2}}


def test_histogram_quantiles():
    h = Histogram("latency", window=100)
    assert h.p95 == 0.0
    for v in range(1, 101):
        h.observe(v)
    assert h.count == 100
    assert h.avg == pytest.approx(50.5)
    assert h.p50 == pytest.approx(50.5)
    assert 95 <= h.p95 <= 96


def test_histogram_window_drops_old_samples():
    h = Histogram("latency", window=3)
    for v in (1000, 1, 2, 3):
        h.observe(v)
    assert h.count == 3
    assert h.to_dict()["max"] == 3


def test_success_rate_and_summary():
    m = MetricsCollector()
    assert m.llm_success_rate == 100.0

    m.record_llm_call("openai", 120.0, success=True)
    m.record_llm_call("openai", 300.0, success=False)
    m.record_llm_call("claude", 90.0, success=True)
    m.record_fallback("openai", "claude")
    m.record_dispatch(providers=2, degraded=1, latency_ms=420.0)

    assert m.llm_success_rate == pytest.approx(66.7)
    summary = m.summary()
    assert summary["counters"]["fallbacks_total"]["by_label"] == {"openai->claude": 1}
    assert summary["latency"]["dispatch_latency_ms"]["count"] == 1
    assert summary["last_dispatches"][0]["degraded"] == 1
    assert m.health_summary()["llm_calls"] == 3


def test_counter_under_threads():
    c = Counter("calls")

    def bump(label):
        for _ in range(500):
            c.inc(label)
            c.get(label)

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(bump, ["openai", "claude", "openai", "grok"]))

    assert c.value == 2000
    assert c.get("openai") == 1000
