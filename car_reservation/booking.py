from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Reservation start time must be earlier than end time.")

    def overlaps(self, other: "TimeRange") -> bool:
        return has_time_overlap(self.start, self.end, other.start, other.end)


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    owner_id: str
    owner_display_name: str
    start: datetime
    end: datetime
    created_at: datetime
    description: str = ""

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Reservation start time must be earlier than end time.")

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start, self.end)

    def is_owned_by(self, user_id: str | None) -> bool:
        return user_id is not None and self.owner_id == user_id


def has_time_overlap(new_start: datetime, new_end: datetime, exist_start: datetime, exist_end: datetime) -> bool:
    """Return True when two time intervals overlap by even one microsecond.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start < exist_end and exist_start < new_end


def can_reserve(
    new_start: datetime,
    new_end: datetime,
    existing_reservations: Iterable[Reservation | TimeRange],
    exclude_id: str | None = None,
) -> bool:
    """Return True if the requested interval does not overlap any existing reservation.

    A reservation whose id equals ``exclude_id`` is ignored, so a booking being
    edited is never reported as conflicting with itself.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")

    for reservation in existing_reservations:
        if exclude_id is not None and getattr(reservation, "reservation_id", None) == exclude_id:
            continue
        if has_time_overlap(new_start, new_end, reservation.start, reservation.end):
            return False
    return True
