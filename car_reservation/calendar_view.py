from __future__ import annotations

from dataclasses import dataclass
from datetime import MAXYEAR, MINYEAR, date, datetime, time, timedelta
from typing import Callable, Iterable, Sequence
import logging
import threading

from .booking import Reservation
from .reservations import ReservationRepository

logger = logging.getLogger("car_reservation.calendar")

GRID_CELLS = 42
DAY_END = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class CalendarDay:
    day: date
    is_current_month: bool
    is_today: bool
    has_reservations: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.day.isoformat(),
            "is_current_month": self.is_current_month,
            "is_today": self.is_today,
            "has_reservations": self.has_reservations,
        }


def has_reservations_on(target: date, reservations: Iterable[Reservation]) -> bool:
    """Return True when any reservation touches ``target`` at all.

    Unlike the conflict check this uses closed bounds, so a booking ending
    exactly at midnight is also shown on the following day.
    """
    day_start = datetime.combine(target, time.min)
    day_end = datetime.combine(target, DAY_END)
    return any(item.start <= day_end and item.end >= day_start for item in reservations)


def grid_start(year: int, month: int) -> date:
    first = date(year, month, 1)
    # date.weekday() has Monday=0; the grid starts on Sunday.
    return first - timedelta(days=(first.weekday() + 1) % 7)


def month_grid(
    year: int,
    month: int,
    reservations: Sequence[Reservation],
    today: date | None = None,
) -> list[CalendarDay]:
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    if not MINYEAR < year < MAXYEAR:
        # The surrounding weeks of the grid must stay inside the supported date range.
        raise ValueError(f"year must be between {MINYEAR + 1} and {MAXYEAR - 1}")

    effective_today = today or date.today()
    first_cell = grid_start(year, month)
    cells: list[CalendarDay] = []
    for offset in range(GRID_CELLS):
        day = first_cell + timedelta(days=offset)
        cells.append(
            CalendarDay(
                day=day,
                is_current_month=(day.year == year and day.month == month),
                is_today=(day == effective_today),
                has_reservations=has_reservations_on(day, reservations),
            )
        )
    return cells


def reservations_for_day(target: date, reservations: Iterable[Reservation]) -> list[Reservation]:
    return sorted(
        (item for item in reservations if item.start.date() == target),
        key=lambda item: item.start,
    )


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


class LiveCalendar:
    """Keeps the latest reservation snapshot and projects views from it.

    Every notification replaces the whole snapshot; views are always
    recomputed from the current snapshot on demand.
    """

    def __init__(
        self,
        repository: ReservationRepository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clock: Callable[[], datetime] = clock or datetime.now
        self._lock = threading.Lock()
        self._reservations: tuple[Reservation, ...] = ()
        self._listeners: list[Callable[[list[Reservation]], None]] = []
        self._subscription = repository.subscribe(self._replace_snapshot)

    @property
    def reservations(self) -> list[Reservation]:
        with self._lock:
            return list(self._reservations)

    def on_change(self, listener: Callable[[list[Reservation]], None]) -> None:
        self._listeners.append(listener)

    def month(self, year: int, month: int) -> list[CalendarDay]:
        return month_grid(year, month, self.reservations, today=self._clock().date())

    def day(self, target: date) -> list[Reservation]:
        return reservations_for_day(target, self.reservations)

    def close(self) -> None:
        self._subscription.unsubscribe()

    def _replace_snapshot(self, reservations: list[Reservation]) -> None:
        with self._lock:
            self._reservations = tuple(reservations)
        logger.debug("Calendar snapshot replaced with %d reservations", len(reservations))
        for listener in list(self._listeners):
            listener(list(reservations))
