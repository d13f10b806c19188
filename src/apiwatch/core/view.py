from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from apiwatch.core.models import RequestEvent

ALL = "all"
STATUS_FILTERS = (ALL, "2xx", "3xx", "4xx", "5xx")
SORT_KEYS = (
    "time-asc",
    "time-desc",
    "duration-asc",
    "duration-desc",
    "status-asc",
    "status-desc",
)
DEFAULT_SORT = "time-desc"

_SORT_FIELDS: Dict[str, Callable[[RequestEvent], Any]] = {
    "time": lambda event: event.timestamp_value(),
    "duration": lambda event: event.duration_ms or 0,
    "status": lambda event: event.status_code or 0,
}


@dataclass(frozen=True)
class ViewSpec:
    status_filter: str = ALL
    method_filter: str = ALL
    sort: str = DEFAULT_SORT

    @classmethod
    def parse(
        cls,
        *,
        status_filter: Optional[str] = None,
        method_filter: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> "ViewSpec":
        status = (status_filter or ALL).strip().lower()
        if status not in STATUS_FILTERS:
            raise ValueError(f"unknown status filter: {status_filter!r} (expected one of {', '.join(STATUS_FILTERS)})")
        method = (method_filter or ALL).strip() or ALL
        sort_key = (sort or DEFAULT_SORT).strip().lower()
        if sort_key not in SORT_KEYS:
            raise ValueError(f"unknown sort: {sort!r} (expected one of {', '.join(SORT_KEYS)})")
        return cls(status_filter=status, method_filter=method, sort=sort_key)

    def replace(
        self,
        *,
        status_filter: Optional[str] = None,
        method_filter: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> "ViewSpec":
        return ViewSpec.parse(
            status_filter=status_filter if status_filter is not None else self.status_filter,
            method_filter=method_filter if method_filter is not None else self.method_filter,
            sort=sort if sort is not None else self.sort,
        )

    @property
    def sort_field(self) -> str:
        return self.sort.split("-", 1)[0]

    @property
    def descending(self) -> bool:
        return self.sort.endswith("-desc")

    @property
    def prepend_safe(self) -> bool:
        return self.sort == "time-desc"


def matches(event: RequestEvent, spec: ViewSpec) -> bool:
    if spec.status_filter != ALL:
        bucket = event.status_bucket()
        if bucket is None or bucket != int(spec.status_filter[0]):
            return False
    if spec.method_filter != ALL and event.method != spec.method_filter:
        return False
    return True


def project(events: Sequence[RequestEvent], spec: ViewSpec) -> List[RequestEvent]:
    """Filter then sort ``events``; never mutates its inputs."""
    filtered = [event for event in events if matches(event, spec)]
    return sorted(filtered, key=_SORT_FIELDS[spec.sort_field], reverse=spec.descending)


def methods_seen(events: Sequence[RequestEvent]) -> List[str]:
    return sorted({event.method for event in events if event.method})


class LiveView:
    """Currently rendered rows for one ``ViewSpec``.

    New live events take a prepend fast path only under ``time-desc``, where
    newest-first arrival already matches the sort; every other sort does a
    full recompute so the ordering stays correct.
    """

    def __init__(self, spec: Optional[ViewSpec] = None) -> None:
        self._spec = spec or ViewSpec()
        self._rows: List[RequestEvent] = []

    @property
    def spec(self) -> ViewSpec:
        return self._spec

    @property
    def rows(self) -> Tuple[RequestEvent, ...]:
        return tuple(self._rows)

    def refresh(self, events: Sequence[RequestEvent]) -> None:
        self._rows = project(events, self._spec)

    def set_spec(self, spec: ViewSpec, events: Sequence[RequestEvent]) -> None:
        self._spec = spec
        self.refresh(events)

    def on_new_event(self, event: RequestEvent, events: Sequence[RequestEvent]) -> bool:
        if not self._spec.prepend_safe:
            self.refresh(events)
            return False
        if matches(event, self._spec):
            self._rows.insert(0, event)
        return True

    def reset(self) -> None:
        self._rows = []
