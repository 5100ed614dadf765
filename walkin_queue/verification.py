"""Verification tokens (the payload printed as the ticket's QR code).

Token format is plain JSON:

    {"queueNumber": "Q007", "phone": "5551234567", "timestamp": 1700000000000}

with the timestamp in epoch milliseconds (the entry's join time).

The token is not signed and the timestamp is not checked against any expiry
window: authenticity rests entirely on an exact match of queue number and
phone against a live entry. Treat it as a lookup key, not a credential.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from .entry import Entry, Status, parse_queue_number

if TYPE_CHECKING:
    from .registry import EntryRegistry

VERIFIABLE_STATUSES = frozenset({Status.WAITING, Status.CALLED})


@dataclass(frozen=True)
class VerificationClaim:
    queue_number: str
    phone: str
    timestamp: int


def encode_token(entry: Entry) -> str:
    payload = {
        "queueNumber": entry.queue_number,
        "phone": entry.phone,
        "timestamp": int(entry.joined_at * 1000),
    }
    return json.dumps(payload, separators=(",", ":"))


def decode_token(raw: str | bytes) -> VerificationClaim:
    """Parse a scanned token. Raises ValueError for anything malformed."""
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError("verification token is not valid JSON") from e
    if not isinstance(data, dict):
        raise ValueError("verification token must be a JSON object")

    queue_number = data.get("queueNumber")
    phone = data.get("phone")
    timestamp = data.get("timestamp")
    if not isinstance(queue_number, str) or parse_queue_number(queue_number) is None:
        raise ValueError("verification token has no valid queueNumber")
    if not isinstance(phone, str) or not phone:
        raise ValueError("verification token has no phone")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise ValueError("verification token has no numeric timestamp")

    return VerificationClaim(queue_number=queue_number, phone=phone, timestamp=int(timestamp))


def verify(source: EntryRegistry | Iterable[Entry], claim: VerificationClaim) -> Entry | None:
    """Find the live entry a claim refers to.

    Only waiting or called entries verify; an entry that is already being
    served, completed or cancelled returns None ("not found or already
    handled").
    """
    entries = source.entries() if hasattr(source, "entries") else source
    wanted = parse_queue_number(claim.queue_number)
    if wanted is None:
        return None
    for e in entries:
        if e.display_number == wanted and e.phone == claim.phone and e.status in VERIFIABLE_STATUSES:
            return e
    return None
