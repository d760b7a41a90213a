from __future__ import annotations
import heapq
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from railpulse.core.models import Event, Seconds

EventId = int


class EventKind(str, Enum):
    DEPART = "depart"
    ENTER_SECTION = "enter_section"
    ARRIVE_STATION = "arrive_station"
    DISRUPTION_START = "disruption_start"
    DISRUPTION_END = "disruption_end"


class EventQueue:
    """Priority queue ordered by (time, insertion sequence).

    Equal-time events come out first-scheduled-first-served, so identical
    input always replays identically. Cancelled entries are dropped lazily
    when they reach the head.
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[Seconds, int, Event]] = []
        self._cancelled: Set[EventId] = set()
        self._counter = 0

    def __len__(self) -> int:
        return len(self._heap) - len(self._cancelled)

    def schedule(self, time: Seconds, kind: str, train_id: Optional[str], payload: Optional[Dict[str, Any]] = None) -> EventId:
        self._counter += 1
        items = tuple(sorted((payload or {}).items()))
        event = Event(time=time, seq=self._counter, kind=str(getattr(kind, "value", kind)), train_id=train_id, payload=items)
        heapq.heappush(self._heap, (event.time, event.seq, event))
        return event.seq

    def reschedule(self, event: Event, time: Seconds) -> EventId:
        """Reinsert a consumed-but-deferred event at ``time`` with a fresh ordering position."""
        return self.schedule(time, event.kind, event.train_id, dict(event.payload))

    def cancel(self, event_id: EventId) -> bool:
        if any(seq == event_id for _, seq, _ in self._heap) and event_id not in self._cancelled:
            self._cancelled.add(event_id)
            return True
        return False

    def _prune(self) -> None:
        while self._heap and self._heap[0][1] in self._cancelled:
            _, seq, _ = heapq.heappop(self._heap)
            self._cancelled.discard(seq)

    def peek(self) -> Optional[Event]:
        self._prune()
        return self._heap[0][2] if self._heap else None

    def pop(self) -> Event:
        self._prune()
        if not self._heap:
            raise IndexError("pop from empty event queue")
        return heapq.heappop(self._heap)[2]

    def is_empty(self) -> bool:
        self._prune()
        return not self._heap

    def clear(self) -> None:
        self._heap = []
        self._cancelled = set()
        self._counter = 0

    def pending(self) -> List[Event]:
        """Live events in processing order (copy)."""
        return [e for _, seq, e in sorted(self._heap) if seq not in self._cancelled]
