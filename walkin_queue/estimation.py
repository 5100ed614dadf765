from __future__ import annotations

# Position and wait estimation.
#
# This is the only place that assigns `position` and `estimated_wait_minutes`.
# The model is deliberately linear:
#   estimated_wait_minutes = position * average_service_time
# where average_service_time is the process-wide tunable (minutes/customer).

import math
from dataclasses import replace
from typing import Iterable

from .entry import Entry, Status

DEFAULT_AVERAGE_SERVICE_TIME = 5.0


def check_service_time(minutes: float) -> float:
    """Return `minutes` as a float, or raise ValueError unless finite and > 0."""
    value = float(minutes)
    if not math.isfinite(value) or value <= 0:
        raise ValueError("average_service_time must be a finite number > 0")
    return value


def estimate_wait_minutes(*, position: int, average_service_time: float) -> float:
    """Estimated wait for a waiting entry at `position`.

    Args:
        position: 1-based rank among waiting entries (>= 1).
        average_service_time: minutes per customer (finite, > 0).
    """
    if position < 1:
        raise ValueError("position must be >= 1")
    check_service_time(average_service_time)
    return position * average_service_time


def recompute(entries: Iterable[Entry], average_service_time: float) -> list[Entry]:
    """Reassign positions and estimates for a whole collection.

    Waiting entries keep their relative (join) order and are numbered 1..N.
    Every other entry is reset to position 0 / estimate 0 and is otherwise
    passed through untouched. The input is not modified.
    """
    check_service_time(average_service_time)

    out: list[Entry] = []
    position = 0
    for e in entries:
        if e.status is Status.WAITING:
            position += 1
            wait = estimate_wait_minutes(position=position, average_service_time=average_service_time)
            if e.position != position or e.estimated_wait_minutes != wait:
                e = replace(e, position=position, estimated_wait_minutes=wait)
        elif e.position or e.estimated_wait_minutes:
            e = replace(e, position=0, estimated_wait_minutes=0)
        out.append(e)
    return out
