"""
Deferred event timeline.

The engine never sleeps. Anything that should happen "later" (an arrow in
flight, an overwatch shot) is scheduled here against a millisecond cursor
that the host advances explicitly with ``advance``.
"""

import logging
from dataclasses import dataclass, field
from heapq import heappop, heappush
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class TimelineEvent:
    at_ms: int
    seq: int
    label: str
    payload: Any = None
    callback: Optional[Callable[["TimelineEvent"], Any]] = None
    resolved: bool = False
    cancelled: bool = False
    result: Any = None


@dataclass
class Timeline:
    now_ms: int = 0
    _queue: List[Tuple[int, int, TimelineEvent]] = field(default_factory=list)
    _seq: int = 0
    resolved: List[TimelineEvent] = field(default_factory=list)

    def schedule(self, delay_ms: int, label: str, callback: Optional[Callable[[TimelineEvent], Any]] = None,
                 payload: Any = None) -> TimelineEvent:
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self._seq += 1
        event = TimelineEvent(self.now_ms + delay_ms, self._seq, label, payload, callback)
        heappush(self._queue, (event.at_ms, event.seq, event))
        logger.debug("scheduled %s at %dms", label, event.at_ms)
        return event

    def advance(self, delta_ms: int) -> List[TimelineEvent]:
        """Move the cursor forward and resolve every event now due, in time order."""
        if delta_ms < 0:
            raise ValueError("The timeline cursor only moves forward")
        target = self.now_ms + delta_ms
        fired: List[TimelineEvent] = []
        while self._queue and self._queue[0][0] <= target:
            _, _, event = heappop(self._queue)
            if event.cancelled or event.resolved:
                continue
            self.now_ms = event.at_ms
            event.resolved = True
            if event.callback is not None:
                event.result = event.callback(event)
            self.resolved.append(event)
            fired.append(event)
        self.now_ms = target
        return fired

    def cancel(self, event: TimelineEvent) -> None:
        event.cancelled = True

    def cancel_all(self) -> int:
        count = 0
        for _, _, event in self._queue:
            if not event.cancelled and not event.resolved:
                event.cancelled = True
                count += 1
        self._queue.clear()
        return count

    def pending(self) -> List[TimelineEvent]:
        return sorted((e for _, _, e in self._queue if not e.cancelled and not e.resolved),
                      key=lambda e: (e.at_ms, e.seq))

    def reset(self) -> None:
        self.cancel_all()
        self.now_ms = 0
        self.resolved.clear()
