"""Shared error envelope and typed queue errors.

We keep error messages consistent across manager/customer/staff clients.
Business outcomes such as a duplicate registration or an unknown entry id are
plain return values (`None`); the exceptions here are for operations that
were asked to do something the queue does not allow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ErrorResponse:
    code: str
    message: str

    def to_message(self, *, corr_id: str | None = None) -> dict[str, Any]:
        msg: dict[str, Any] = {"type": "error", "code": self.code, "message": self.message}
        if corr_id is not None:
            msg["corr_id"] = corr_id
        return msg


class QueueError(Exception):
    """Base class for errors raised by the queue core."""

    code = "queue_error"

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(self.code, str(self))


class InvalidTransition(QueueError):
    """A lifecycle transition that the state machine does not define."""

    code = "invalid_transition"

    def __init__(self, entry_id: str, current: str, target: str) -> None:
        super().__init__(f"cannot move entry {entry_id} from {current} to {target}")
        self.entry_id = entry_id
        self.current = current
        self.target = target


class ServingSlotOccupied(InvalidTransition):
    """Another entry already holds the single serving slot."""

    code = "serving_slot_occupied"

    def __init__(self, entry_id: str, current: str, serving_id: str) -> None:
        super().__init__(entry_id, current, "serving")
        self.serving_id = serving_id
        self.args = (f"cannot serve entry {entry_id}: entry {serving_id} is already being served",)


class ValidationError(ValueError):
    """Registration input rejected before it reaches the queue."""

    code = "validation_failed"

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))
        self.errors = dict(errors)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(self.code, str(self))


class PredictionError(Exception):
    """The hosted prediction service produced no usable data."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(self.code, str(self))
