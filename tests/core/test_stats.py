from __future__ import annotations

from apiwatch.core.models import RequestEvent
from apiwatch.core.stats import (
    StatsAggregator,
    latency_series,
    round_half_up,
    success_series,
    volume_series,
)


def _event(event_id: int, status=None, duration=None) -> RequestEvent:
    return RequestEvent(id=event_id, status_code=status, duration_ms=duration)


def test_counters_use_200_to_400_success_range() -> None:
    stats = StatsAggregator()
    for index, status in enumerate([200, 302, 399, 400, 500, 199, None]):
        stats.update(_event(index, status=status), now=1.0)
        snapshot = stats.snapshot()
        assert snapshot.success_count + snapshot.error_count == snapshot.total

    snapshot = stats.snapshot()
    assert snapshot.total == 7
    assert snapshot.success_count == 3
    assert snapshot.error_count == 4


def test_history_flag_uses_laxer_below_400_rule() -> None:
    stats = StatsAggregator()
    stats.update(_event(1, status=0), now=1.0)
    stats.update(_event(2, status=404), now=2.0)
    stats.update(_event(3, status=None), now=3.0)

    snapshot = stats.snapshot()
    assert [sample.success for sample in snapshot.history] == [True, False, False]
    assert [sample.time for sample in snapshot.history] == [1.0, 2.0, 3.0]
    # Status 0 is a history success but a counter error.
    assert snapshot.success_count == 0


def test_duration_window_evicts_oldest_first() -> None:
    stats = StatsAggregator()
    for n in range(1, 26):
        stats.update(_event(n, status=200, duration=n), now=float(n))

    snapshot = stats.snapshot()
    assert snapshot.duration_samples == tuple(range(6, 26))
    assert len(snapshot.history) == 20
    assert snapshot.history[0].time == 6.0


def test_zero_duration_is_a_sample_and_missing_is_not() -> None:
    stats = StatsAggregator()
    stats.update(_event(1, status=200, duration=0), now=1.0)
    stats.update(_event(2, status=200, duration=None), now=2.0)

    assert stats.snapshot().duration_samples == (0,)


def test_derived_metrics_defaults_and_rounding() -> None:
    stats = StatsAggregator()
    assert stats.derived_metrics().success_rate_percent == 100
    assert stats.derived_metrics().average_duration_ms == 0

    stats.update(_event(1, status=200, duration=10), now=1.0)
    stats.update(_event(2, status=500, duration=15), now=2.0)
    stats.update(_event(3, status=201), now=3.0)

    metrics = stats.derived_metrics()
    assert metrics.success_rate_percent == 67
    assert metrics.average_duration_ms == 13


def test_round_half_up_matches_dashboard_rounding() -> None:
    assert round_half_up(12.5) == 13
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


def test_custom_window_and_reset() -> None:
    stats = StatsAggregator(window=3)
    for n in range(5):
        stats.update(_event(n, status=200, duration=n), now=float(n))
    assert stats.snapshot().duration_samples == (2, 3, 4)

    stats.reset()
    assert stats.total == 0
    assert stats.window == 3
    assert stats.snapshot().history == ()


def test_chart_series_cover_last_ten_samples() -> None:
    stats = StatsAggregator()
    for n in range(1, 13):
        stats.update(_event(n, status=200 if n % 2 else 500, duration=n * 10), now=float(n))

    snapshot = stats.snapshot()
    assert volume_series(snapshot) == list(range(1, 11))
    assert success_series(snapshot) == [n % 2 == 1 for n in range(3, 13)]
    latency = latency_series(snapshot)
    assert len(latency) == 10
    assert latency[-1] == 1.0
    assert latency[0] == 30 / 120
