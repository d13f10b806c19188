from __future__ import annotations

from apiwatch.core.expansion import ExpansionTracker


def test_toggle_opens_then_closes() -> None:
    tracker = ExpansionTracker()
    assert tracker.toggle(7) is True
    assert tracker.is_expanded(7)
    assert 7 in tracker
    assert tracker.toggle(7) is False
    assert not tracker.is_expanded(7)


def test_unknown_ids_are_inert_and_clear_drops_everything() -> None:
    tracker = ExpansionTracker()
    tracker.toggle(1)
    tracker.toggle(2)

    assert not tracker.is_expanded(42)
    assert len(tracker) == 2
    tracker.clear()
    assert len(tracker) == 0
