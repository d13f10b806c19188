from __future__ import annotations

import pytest

from apiwatch.core.store import EventStore
from apiwatch.core.view import LiveView, ViewSpec, methods_seen, project


def _store(*raws) -> EventStore:
    store = EventStore()
    for raw in raws:
        store.ingest(raw)
    return store


def test_status_filter_matches_by_hundreds_bucket() -> None:
    store = _store(
        {"status_code": 200, "timestamp": 1},
        {"status_code": 404, "timestamp": 2},
        {"status_code": 429, "timestamp": 3},
        {"status_code": 500, "timestamp": 4},
        {"timestamp": 5},
    )
    rows = project(store.snapshot(), ViewSpec.parse(status_filter="4xx", sort="time-asc"))
    assert [event.status_code for event in rows] == [404, 429]

    all_rows = project(store.snapshot(), ViewSpec())
    assert len(all_rows) == 5


def test_method_filter_is_exact_and_case_sensitive() -> None:
    store = _store({"method": "GET"}, {"method": "get"}, {"method": "POST"})
    rows = project(store.snapshot(), ViewSpec.parse(method_filter="GET"))
    assert [event.method for event in rows] == ["GET"]
    assert methods_seen(store.snapshot()) == ["GET", "POST", "get"]


def test_duration_sort_treats_missing_as_zero() -> None:
    store = _store({"duration_ms": 50}, {"path": "/none"}, {"duration_ms": 10})
    rows = project(store.snapshot(), ViewSpec.parse(sort="duration-asc"))
    assert [event.duration_ms for event in rows] == [None, 10, 50]

    desc = project(store.snapshot(), ViewSpec.parse(sort="duration-desc"))
    assert [event.duration_ms for event in desc] == [50, 10, None]


def test_status_and_time_sorts() -> None:
    store = _store(
        {"status_code": 500, "timestamp": "2024-01-01T00:00:02Z"},
        {"status_code": 200, "timestamp": "2024-01-01T00:00:01Z"},
        {"timestamp": "2024-01-01T00:00:03Z"},
    )
    by_status = project(store.snapshot(), ViewSpec.parse(sort="status-asc"))
    assert [event.status_code for event in by_status] == [None, 200, 500]

    by_time = project(store.snapshot(), ViewSpec.parse(sort="time-desc"))
    assert [event.status_code for event in by_time] == [None, 500, 200]


def test_project_is_pure_and_repeatable() -> None:
    store = _store({"status_code": 200, "duration_ms": 5}, {"status_code": 404, "duration_ms": 1})
    snapshot = store.snapshot()
    spec = ViewSpec.parse(sort="duration-asc")

    first = project(snapshot, spec)
    second = project(snapshot, spec)
    assert first == second
    assert store.snapshot() == snapshot


def test_view_spec_rejects_unknown_values() -> None:
    with pytest.raises(ValueError):
        ViewSpec.parse(status_filter="6xx")
    with pytest.raises(ValueError):
        ViewSpec.parse(sort="path-asc")
    assert ViewSpec().replace(sort="status-desc").sort == "status-desc"


def test_live_view_prepends_only_under_time_desc() -> None:
    store = _store({"status_code": 200, "timestamp": 1})
    view = LiveView(ViewSpec())
    view.refresh(store.snapshot())

    event = store.ingest({"status_code": 201, "timestamp": 2})
    assert view.on_new_event(event, store.snapshot()) is True
    assert [row.id for row in view.rows] == [2, 1]


def test_live_view_fast_path_respects_filter() -> None:
    store = EventStore()
    view = LiveView(ViewSpec.parse(status_filter="5xx"))
    event = store.ingest({"status_code": 200})
    assert view.on_new_event(event, store.snapshot()) is True
    assert view.rows == ()


def test_live_view_recomputes_for_other_sorts() -> None:
    store = _store({"duration_ms": 100})
    view = LiveView(ViewSpec.parse(sort="duration-desc"))
    view.refresh(store.snapshot())

    event = store.ingest({"duration_ms": 5})
    assert view.on_new_event(event, store.snapshot()) is False
    assert [row.duration_ms for row in view.rows] == [100, 5]
