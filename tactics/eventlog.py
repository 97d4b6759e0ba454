import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .enums import Severity

logger = logging.getLogger(__name__)

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


@dataclass(frozen=True)
class LogEvent:
    message: str
    severity: Severity = Severity.INFO
    round: int = 0
    actor_id: Optional[str] = None


class EventLog:
    """Append-only combat log consumed by the presentation layer.

    Each entry is also forwarded to the ``logging`` module at the matching
    level so hosts can route engine output with ordinary handlers.
    """

    def __init__(self, forward: bool = True):
        self._events: List[LogEvent] = []
        self.forward = forward

    def append(self, message: str, severity: Severity = Severity.INFO,
               round: int = 0, actor_id: Optional[str] = None) -> LogEvent:
        event = LogEvent(message, severity, round, actor_id)
        self._events.append(event)
        if self.forward:
            logger.log(_LEVELS[severity], message)
        return event

    @property
    def events(self) -> List[LogEvent]:
        return list(self._events)

    def messages(self) -> List[str]:
        return [e.message for e in self._events]

    def with_severity(self, severity: Severity) -> List[LogEvent]:
        return [e for e in self._events if e.severity is severity]

    def since(self, index: int) -> List[LogEvent]:
        return self._events[index:]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[LogEvent]:
        return iter(list(self._events))
