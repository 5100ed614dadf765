from __future__ import annotations

# Entry registry: the collection of queue entries in join order.
#
# Not thread-safe on its own. `QueueManager` owns one registry and serializes
# all access with its lock.

import time
import uuid
from dataclasses import replace
from typing import Any, Callable

from .entry import Entry, Status, parse_queue_number
from .estimation import DEFAULT_AVERAGE_SERVICE_TIME, check_service_time, recompute

# Fields owned by the estimation pass; nobody else may write them.
_DERIVED_FIELDS = frozenset({"position", "estimated_wait_minutes"})
_IMMUTABLE_FIELDS = frozenset({"id", "display_number", "joined_at"})


def _new_entry_id() -> str:
    return f"queue-{uuid.uuid4().hex}"


class EntryRegistry:
    """Owns entries, identities and the display-number counter."""

    def __init__(
        self,
        *,
        average_service_time: float = DEFAULT_AVERAGE_SERVICE_TIME,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_entry_id,
    ) -> None:
        self._entries: list[Entry] = []
        self._next_display_number = 1
        self._average_service_time = check_service_time(average_service_time)
        self._clock = clock
        self._id_factory = id_factory

    # -------------------- tuning --------------------

    @property
    def average_service_time(self) -> float:
        return self._average_service_time

    @average_service_time.setter
    def average_service_time(self, minutes: float) -> None:
        self._average_service_time = check_service_time(minutes)
        self._recompute()

    # -------------------- mutations --------------------

    def add(self, name: str, phone: str) -> Entry | None:
        """Register a new waiting entry, or return None for a duplicate.

        A duplicate is an active (waiting/called/serving) entry with the same
        phone and the same name after trimming and case folding.
        """
        for e in self._entries:
            if e.is_active and e.matches_identity(name, phone):
                return None

        entry = Entry(
            id=self._id_factory(),
            display_number=self._next_display_number,
            name=name,
            phone=phone,
            joined_at=self._clock(),
        )
        self._next_display_number += 1
        self._entries.append(entry)
        self._recompute()
        return self.get(entry.id)

    def remove(self, entry_id: str) -> Entry | None:
        """Delete an entry outright. Returns the removed record, if any."""
        for i, e in enumerate(self._entries):
            if e.id == entry_id:
                del self._entries[i]
                self._recompute()
                return e
        return None

    def update(self, entry_id: str, **changes: Any) -> Entry | None:
        """Replace fields on one entry and recompute. None for unknown ids."""
        forbidden = (_DERIVED_FIELDS | _IMMUTABLE_FIELDS) & changes.keys()
        if forbidden:
            raise ValueError(f"cannot set {', '.join(sorted(forbidden))} directly")

        for i, e in enumerate(self._entries):
            if e.id == entry_id:
                self._entries[i] = replace(e, **changes)
                self._recompute()
                return self._entries[i]
        return None

    def _recompute(self) -> None:
        self._entries = recompute(self._entries, self._average_service_time)

    # -------------------- reads --------------------

    def entries(self) -> tuple[Entry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, entry_id: str) -> Entry | None:
        for e in self._entries:
            if e.id == entry_id:
                return e
        return None

    def waiting(self) -> list[Entry]:
        """Waiting entries ordered by position."""
        return [e for e in self._entries if e.status is Status.WAITING]

    def with_status(self, status: Status) -> list[Entry]:
        return [e for e in self._entries if e.status is status]

    def position_of(self, entry_id: str) -> int:
        e = self.get(entry_id)
        return e.position if e is not None else 0

    def find_by_phone(self, phone: str) -> Entry | None:
        """First entry (any status) registered with this phone."""
        for e in self._entries:
            if e.phone == phone:
                return e
        return None

    def find_by_display_number(self, number: int | str) -> Entry | None:
        n = parse_queue_number(number)
        if n is None:
            return None
        for e in self._entries:
            if e.display_number == n:
                return e
        return None

    def search(self, query: str) -> list[Entry]:
        """Case-insensitive substring match over name, phone and queue number."""
        q = query.strip().lower()
        return [
            e
            for e in self._entries
            if q in e.name.lower() or q in e.phone or q in e.queue_number.lower()
        ]
