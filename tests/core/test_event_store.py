from __future__ import annotations

from apiwatch.core.store import EventStore
from apiwatch.core.view import ViewSpec, project


def test_ingest_assigns_increasing_ids_newest_first() -> None:
    store = EventStore()
    first = store.ingest({"method": "GET", "path": "/a", "status_code": 200})
    second = store.ingest({"method": "POST", "path": "/b", "status_code": 201})

    assert first.id == 1
    assert second.id == 2
    assert [event.id for event in store.snapshot()] == [2, 1]


def test_ingest_keeps_missing_fields_absent() -> None:
    store = EventStore()
    event = store.ingest({"method": "GET", "path": "/x"})
    zero = store.ingest({"method": "GET", "path": "/y", "duration_ms": 0, "status_code": "404"})

    assert event.status_code is None
    assert event.duration_ms is None
    assert event.service is None
    assert event.headers is None
    assert zero.duration_ms == 0
    assert zero.status_code == 404


def test_ingest_batch_preserves_stream_order() -> None:
    store = EventStore()
    events = store.ingest_batch([{"path": f"/{n}"} for n in range(3)], historical=True)

    assert [event.path for event in events] == ["/0", "/1", "/2"]
    assert [event.path for event in store.snapshot()] == ["/2", "/1", "/0"]
    assert store.stats.total == 3


def test_snapshot_does_not_alias_live_log() -> None:
    store = EventStore()
    store.ingest({"path": "/a"})
    snapshot = store.snapshot()
    store.ingest({"path": "/b"})

    assert len(snapshot) == 1
    assert len(store) == 2


def test_clear_resets_log_and_stats_but_not_ids() -> None:
    store = EventStore()
    store.ingest({"status_code": 500})
    store.ingest({"status_code": 200, "duration_ms": 30})
    store.clear()

    assert store.snapshot() == ()
    assert store.stats.total == 0
    assert store.metrics().success_rate_percent == 100
    assert store.metrics().average_duration_ms == 0
    assert store.ingest({"path": "/again"}).id == 3



def test_non_finite_durations_are_treated_as_absent() -> None:
    store = EventStore()
    store.ingest({"status_code": 200, "duration_ms": 40})
    text_nan = store.ingest({"status_code": 200, "duration_ms": "nan"})
    infinite = store.ingest({"status_code": 200, "duration_ms": float("inf")})
    negative = store.ingest({"status_code": 200, "duration_ms": "-Infinity"})
    too_big = store.ingest({"status_code": 200, "duration_ms": int("9" * 400)})

    assert text_nan.duration_ms is None
    assert infinite.duration_ms is None
    assert negative.duration_ms is None
    assert too_big.duration_ms is None
    assert store.stats_snapshot().duration_samples == (40,)
    assert store.metrics().average_duration_ms == 40


def test_average_stays_finite_near_float_ceiling() -> None:
    store = EventStore()
    store.ingest({"duration_ms": 1.5e308})
    store.ingest({"duration_ms": 1.5e308})

    assert store.metrics().average_duration_ms == int(1.5e308)


def test_huge_status_codes_sort_without_overflow() -> None:
    store = EventStore()
    huge = store.ingest({"path": "/huge", "status_code": int("9" * 400)})
    store.ingest({"path": "/ok", "status_code": 200})
    store.ingest({"path": "/none"})

    ascending = project(store.snapshot(), ViewSpec(sort="status-asc"))
    descending = project(store.snapshot(), ViewSpec(sort="status-desc"))

    assert [event.path for event in ascending] == ["/none", "/ok", "/huge"]
    assert descending[0] == huge
    assert store.metrics().success_rate_percent == 33
