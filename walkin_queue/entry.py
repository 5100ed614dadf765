from __future__ import annotations

# Queue entry record.
#
# Entries are frozen: every change (status transition, recompute pass) produces
# a new record via `dataclasses.replace`. Anything handed out of the manager is
# therefore a snapshot and can be read from any thread.

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Status(str, Enum):
    WAITING = "waiting"
    CALLED = "called"
    SERVING = "serving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({Status.WAITING, Status.CALLED, Status.SERVING})


def format_queue_number(display_number: int) -> str:
    """Human-facing label for a display number (1 -> "Q001")."""
    return f"Q{display_number:03d}"


def parse_queue_number(label: str | int) -> int | None:
    """Inverse of `format_queue_number`. Accepts "Q007", "q7", "7" or 7."""
    if isinstance(label, int):
        return label
    text = str(label).strip().upper()
    if text.startswith("Q"):
        text = text[1:]
    if not text.isdigit():
        return None
    return int(text)


def normalize_name(name: str) -> str:
    return name.strip().lower()


@dataclass(frozen=True)
class Entry:
    """One customer's queue record."""

    id: str
    display_number: int
    name: str
    phone: str
    joined_at: float
    status: Status = Status.WAITING
    position: int = 0
    estimated_wait_minutes: float = 0
    verified_at: float | None = None
    notified_at: float | None = None

    @property
    def queue_number(self) -> str:
        return format_queue_number(self.display_number)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def verification_code(self) -> str:
        from .verification import encode_token

        return encode_token(self)

    def matches_identity(self, name: str, phone: str) -> bool:
        """Duplicate-detection key: normalized name AND exact phone."""
        return self.phone == phone and normalize_name(self.name) == normalize_name(name)

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queue_number": self.queue_number,
            "display_number": self.display_number,
            "name": self.name,
            "phone": self.phone,
            "joined_at": self.joined_at,
            "status": self.status.value,
            "position": self.position,
            "estimated_wait_minutes": self.estimated_wait_minutes,
            "verified_at": self.verified_at,
            "notified_at": self.notified_at,
            "verification_code": self.verification_code,
        }
