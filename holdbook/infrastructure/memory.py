import copy
from datetime import date
from typing import Any, Callable, Dict, List, Tuple

from holdbook.domain import Booking, CapacityCounter, Reservation

_MISSING = object()


class InMemoryStorage:
    """Process-local tables backing the in-memory repositories.

    Shared by every unit of work of one application instance. Writes are only
    ever made while the owning (product, date) lock is held, so each unit of
    work can undo its own writes without disturbing other keys.
    """

    def __init__(self):
        self.counters: Dict[Tuple[str, date], CapacityCounter] = {}
        self.reservations: Dict[str, Reservation] = {}
        self.bookings: Dict[str, Booking] = {}
        # ticket code -> booking reference
        self.ticket_index: Dict[str, str] = {}


class UndoLog:
    """Records prior values so an uncommitted unit of work can be reverted."""

    def __init__(self):
        self._entries: List[Callable[[], None]] = []

    def put(self, table: Dict[Any, Any], key: Any, value: Any) -> None:
        previous = table.get(key, _MISSING)

        def undo():
            if previous is _MISSING:
                table.pop(key, None)
            else:
                table[key] = previous

        self._entries.append(undo)
        table[key] = value

    def revert(self) -> None:
        while self._entries:
            self._entries.pop()()

    def clear(self) -> None:
        self._entries.clear()


def detached(value):
    """Copy handed across the repository boundary"""
    return copy.deepcopy(value)
