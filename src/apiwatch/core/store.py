from __future__ import annotations

from collections import deque
from typing import Any, Deque, Iterable, List, Mapping, Optional, Tuple

from apiwatch.config.settings import DEFAULT_STATS_WINDOW
from apiwatch.core.models import RequestEvent
from apiwatch.core.stats import DerivedMetrics, StatsAggregator, StatsSnapshot


class EventStore:
    """Newest-first in-memory request log with derived rolling statistics.

    The full log is not capped within a session; only the statistics
    windows are. Ids come from a per-store counter, so they are unique for
    the store's lifetime (including across ``clear``) and increase with
    arrival order.
    """

    def __init__(self, stats_window: int = DEFAULT_STATS_WINDOW) -> None:
        self._items: Deque[RequestEvent] = deque()
        self._seq = 0
        self._stats = StatsAggregator(window=stats_window)

    def ingest(self, raw: Mapping[str, Any], now: Optional[float] = None) -> RequestEvent:
        self._seq += 1
        event = RequestEvent.from_raw(raw, event_id=self._seq)
        self._items.appendleft(event)
        self._stats.update(event, now=now)
        return event

    def ingest_batch(
        self,
        raws: Iterable[Mapping[str, Any]],
        historical: bool = True,
        now: Optional[float] = None,
    ) -> List[RequestEvent]:
        """Ingest ``raws`` in the given order and return them in that order.

        ``historical`` does not change what is stored; it only tells the
        caller that the view needs a single full recompute afterwards.
        """
        return [self.ingest(raw, now=now) for raw in raws]

    def clear(self) -> None:
        self._items.clear()
        self._stats.reset()

    def snapshot(self) -> Tuple[RequestEvent, ...]:
        return tuple(self._items)

    @property
    def stats(self) -> StatsAggregator:
        return self._stats

    def stats_snapshot(self) -> StatsSnapshot:
        return self._stats.snapshot()

    def metrics(self) -> DerivedMetrics:
        return self._stats.derived_metrics()

    def __len__(self) -> int:
        return len(self._items)
