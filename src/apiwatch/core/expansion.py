from __future__ import annotations

from typing import Set


class ExpansionTracker:
    """Ids whose detail panel is open.

    Membership survives re-projection and stats updates and is only dropped
    wholesale by ``clear``. Ids that no longer render are simply inert.
    """

    def __init__(self) -> None:
        self._open: Set[int] = set()

    def toggle(self, event_id: int) -> bool:
        if event_id in self._open:
            self._open.discard(event_id)
            return False
        self._open.add(event_id)
        return True

    def is_expanded(self, event_id: int) -> bool:
        return event_id in self._open

    def clear(self) -> None:
        self._open.clear()

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._open

    def __len__(self) -> int:
        return len(self._open)
