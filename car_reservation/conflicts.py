from __future__ import annotations

from datetime import datetime
import logging

from .booking import can_reserve
from .reservations import ReservationRepository
from .yaml_store import IndexUnavailableError

logger = logging.getLogger("car_reservation.conflicts")


class ConflictDetector:
    """Checks a candidate interval against every stored reservation.

    The store is asked for overlap candidates with a two-field range query
    first. When that query needs an index the store does not have, the
    detector reads the whole collection and filters locally instead, with the
    same answer.
    """

    def __init__(self, repository: ReservationRepository) -> None:
        self.repository = repository

    def has_conflict(self, start: datetime, end: datetime, exclude_id: str | None = None) -> bool:
        try:
            candidates = self.repository.find_overlap_candidates(start, end)
        except IndexUnavailableError as error:
            logger.info("Range query unavailable (%s); scanning all reservations", error)
            candidates = self.repository.list_reservations()

        return not can_reserve(start, end, candidates, exclude_id=exclude_id)
