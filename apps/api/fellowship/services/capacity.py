"""Seat accounting for events with an optional capacity."""

from __future__ import annotations

from enum import Enum


class CapacityDecision(str, Enum):
    ACCEPT = "ACCEPT"
    WAITLIST = "WAITLIST"


def evaluate(max_capacity: int | None, confirmed_count: int) -> CapacityDecision:
    """Decide whether a new join request gets a seat or a waitlist spot.

    Total over its inputs: an unset capacity always accepts.
    """
    if max_capacity is None:
        return CapacityDecision.ACCEPT
    if confirmed_count < max_capacity:
        return CapacityDecision.ACCEPT
    return CapacityDecision.WAITLIST


def available_spots(max_capacity: int | None, confirmed_count: int) -> int | None:
    if max_capacity is None:
        return None
    return max(0, max_capacity - confirmed_count)
