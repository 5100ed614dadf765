"""Arrival model for simulated walk-ins.

Walk-ins are modelled as a Poisson process with rate λ (customers/minute):
the gaps between consecutive arrivals are i.i.d. Exponential(λ). The
generator samples one gap, sleeps, registers a guest, and repeats.

A time scale lets demos run faster than real time: with `time_scale=60`
one simulated minute passes every real second.
"""

from __future__ import annotations

import random


def sample_interarrival_seconds(
    *, rate_per_min: float, time_scale: float = 1.0, rng: random.Random | None = None
) -> float:
    """Sample the real-time delay (seconds) until the next walk-in.

    Args:
        rate_per_min: λ, walk-ins per simulated minute. Must be > 0.
        time_scale: simulated seconds per real second. Must be > 0.
        rng: optional RNG (useful for deterministic tests).
    """
    if rate_per_min <= 0:
        raise ValueError("rate_per_min must be > 0")
    if time_scale <= 0:
        raise ValueError("time_scale must be > 0")

    r = rng or random
    minutes = r.expovariate(rate_per_min)
    return float(minutes * 60.0 / time_scale)
