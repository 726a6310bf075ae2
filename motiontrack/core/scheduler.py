"""
Named one-shot timers evaluated against the engine clock.

The engine never sleeps: every processed event carries a timestamp, and timers
whose deadline has passed fire before the event itself is applied. Because
scheduling, cancelling and firing all happen on the engine's single event queue,
cancelling a timer and changing state are atomic with respect to other events.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

TimerCallback = Callable[[float], None]

@dataclass(order=True)
class _Timer:
    deadline: float
    seq: int
    name: str = field(compare=False)
    callback: TimerCallback = field(compare=False)

class Scheduler:
    """One-shot timers keyed by name. Rescheduling a name replaces the old timer."""

    def __init__(self):
        self._timers: Dict[str, _Timer] = {}
        self._seq = 0
        self.logger = logging.getLogger(__name__)

    def schedule(self, name: str, deadline: float, callback: TimerCallback) -> None:
        self._seq += 1
        self._timers[name] = _Timer(deadline, self._seq, name, callback)
        self.logger.debug(f"Timer {name} scheduled for t={deadline:.3f}")

    def cancel(self, name: str) -> bool:
        """Cancel a timer. Returns False if it was not pending (cancel is idempotent)."""
        return self._timers.pop(name, None) is not None

    def cancel_all(self) -> None:
        self._timers.clear()

    def is_pending(self, name: str) -> bool:
        return name in self._timers

    def deadline(self, name: str) -> Optional[float]:
        timer = self._timers.get(name)
        return timer.deadline if timer else None

    def advance(self, now: float) -> int:
        """
        Fire every timer whose deadline is <= now, earliest first.

        Callbacks may schedule or cancel other timers; newly scheduled timers that
        are already due fire in the same call.

        Returns:
            Number of timers fired
        """
        fired = 0
        while True:
            due: List[_Timer] = sorted(t for t in self._timers.values() if t.deadline <= now)
            if not due:
                return fired
            timer = due[0]
            del self._timers[timer.name]
            timer.callback(timer.deadline)
            fired += 1
