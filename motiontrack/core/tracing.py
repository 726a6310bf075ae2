"""
Event tracing for motiontrack.

Keeps a bounded buffer of recently published events so that a capture cycle can
be inspected after the fact (which phases it went through, which sessions were
produced, how often snapshots were emitted).
"""

import logging
import time
from collections import Counter, deque
from typing import Any, Deque, Dict, List

from .events import BaseEvent, EventType

class EventTracer:
    """Ring buffer of published events; the oldest entries fall off at `max_events`."""

    def __init__(self, max_events: int = 1000):
        self.max_events = max_events
        self.events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        self._logger = logging.getLogger(__name__)

    def record_event(self, event: BaseEvent) -> None:
        entry = {
            'timestamp': time.time(),
            'trace_id': event.trace_id,
            'type': EventType(event.type).value,
            'producer': event.producer_name,
            'event_data': event.model_dump(exclude={'trace_id', 'type', 'producer_name'}),
        }
        self.events.append(entry)
        self._logger.debug(f"trace {entry['type']} <- {entry['producer']}")

    def get_events_by_type(self, event_type: EventType) -> List[Dict[str, Any]]:
        wanted = EventType(event_type).value
        return [entry for entry in self.events if entry['type'] == wanted]

    def get_phase_timeline(self) -> List[str]:
        """Phases entered, oldest first, as far back as the buffer reaches."""
        return [entry['event_data']['phase']
                for entry in self.get_events_by_type(EventType.RECORDING_PHASE_CHANGED)]

    def get_event_count(self) -> int:
        return len(self.events)

    def clear(self) -> None:
        self.events.clear()

    def get_event_stats(self) -> Dict[str, Any]:
        """Totals per event type and per producer over the current buffer."""
        return {
            'total_events': len(self.events),
            'event_types': dict(Counter(entry['type'] for entry in self.events)),
            'producers': dict(Counter(entry['producer'] for entry in self.events)),
        }
