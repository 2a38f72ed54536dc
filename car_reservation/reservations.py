from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable
import logging
import random

from .booking import Reservation
from .yaml_store import Document, DocumentNotFoundError, Subscription, YamlDocumentStore, to_datetime

logger = logging.getLogger("car_reservation.reservations")

RESERVATIONS_COLLECTION = "reservations"
REQUIRED_TIME_FIELDS = ("start", "end", "created_at")

ReservationsCallback = Callable[[list[Reservation]], None]


def parse_reservation(document: Document) -> Reservation | None:
    """Translate a stored document into a Reservation, or None when it is unusable."""
    start = to_datetime(document.get("start"))
    end = to_datetime(document.get("end"))
    created_at = to_datetime(document.get("created_at"))
    if start is None or end is None or created_at is None:
        return None
    if start >= end:
        return None

    description = document.get("description")
    return Reservation(
        reservation_id=document.doc_id,
        owner_id=str(document.get("owner_id") or ""),
        owner_display_name=str(document.get("owner_display_name") or ""),
        start=start,
        end=end,
        created_at=created_at,
        description=str(description) if description is not None else "",
    )


def reservation_to_record(reservation: Reservation) -> dict[str, Any]:
    return {
        "owner_id": reservation.owner_id,
        "owner_display_name": reservation.owner_display_name,
        "start": reservation.start,
        "end": reservation.end,
        "description": reservation.description,
        "created_at": reservation.created_at,
    }


def parse_snapshot(documents: Iterable[Document]) -> list[Reservation]:
    """Parse every document, dropping the unusable ones, ordered by start time."""
    reservations: list[Reservation] = []
    for document in documents:
        reservation = parse_reservation(document)
        if reservation is None:
            logger.warning(
                "Skipping invalid reservation document %s (missing or invalid %s)",
                document.doc_id,
                "/".join(REQUIRED_TIME_FIELDS),
            )
            continue
        reservations.append(reservation)
    reservations.sort(key=lambda item: (item.start, item.created_at))
    return reservations


class ReservationRepository:
    def __init__(self, store: YamlDocumentStore, collection: str = RESERVATIONS_COLLECTION) -> None:
        self.store = store
        self.collection = collection

    def subscribe(self, callback: ReservationsCallback) -> Subscription:
        return self.store.subscribe_all(self.collection, lambda documents: callback(parse_snapshot(documents)))

    def list_reservations(self) -> list[Reservation]:
        return parse_snapshot(self.store.read_all(self.collection))

    def find_overlap_candidates(self, start: datetime, end: datetime) -> list[Reservation]:
        documents = self.store.query_where(
            self.collection,
            ("start", "<", end),
            ("end", ">", start),
        )
        return parse_snapshot(documents)

    def get(self, reservation_id: str) -> Reservation | None:
        try:
            document = self.store.get_one(self.collection, reservation_id)
        except DocumentNotFoundError:
            return None
        return parse_reservation(document)

    def create(
        self,
        *,
        owner_id: str,
        owner_display_name: str,
        start: datetime,
        end: datetime,
        description: str = "",
        created_at: datetime | None = None,
    ) -> Reservation:
        if start >= end:
            raise ValueError("Reservation start time must be earlier than end time.")

        effective_created_at = (created_at or datetime.now()).replace(microsecond=0)
        fields = {
            "owner_id": owner_id,
            "owner_display_name": owner_display_name,
            "start": start,
            "end": end,
            "description": description,
            "created_at": effective_created_at,
        }
        reservation_id = self.store.create(self.collection, fields)
        return Reservation(
            reservation_id=reservation_id,
            owner_id=owner_id,
            owner_display_name=owner_display_name,
            start=start,
            end=end,
            created_at=effective_created_at,
            description=description,
        )

    def update(self, reservation_id: str, start: datetime, end: datetime, description: str) -> None:
        if start >= end:
            raise ValueError("Reservation start time must be earlier than end time.")
        self.store.update(
            self.collection,
            reservation_id,
            {"start": start, "end": end, "description": description},
        )

    def delete(self, reservation_id: str) -> None:
        self.store.delete(self.collection, reservation_id)

    def seed_test_data(
        self,
        owners: list[tuple[str, str]],
        now: datetime | None = None,
        days: int = 14,
        overwrite: bool = True,
    ) -> list[Reservation]:
        effective_now = now or datetime.now()
        if overwrite:
            for document in self.store.read_all(self.collection):
                self.store.delete(self.collection, document.doc_id)

        created: list[Reservation] = []
        for draft in generate_test_reservations(effective_now.date(), owners, days=days):
            created.append(
                self.create(
                    owner_id=draft.owner_id,
                    owner_display_name=draft.owner_display_name,
                    start=draft.start,
                    end=draft.end,
                    description=draft.description,
                    created_at=effective_now,
                )
            )
        logger.info("Seeded %d test reservations", len(created))
        return created


def generate_test_reservations(
    start_date: date,
    owners: list[tuple[str, str]],
    days: int = 14,
) -> list[Reservation]:
    """Build a deterministic, overlap-free set of same-day bookings.

    ``owners`` is a list of ``(user_id, display_name)`` pairs. Returned
    reservations carry placeholder ids; the store assigns real ones.
    """
    if days <= 0:
        raise ValueError("days must be greater than zero")
    if not owners:
        raise ValueError("owners must not be empty")

    rng = random.Random(f"car:{start_date.isoformat()}:{days}")
    purposes = ["Client visit", "Airport pickup", "Site inspection", "Supplier meeting", ""]
    now = datetime.now().replace(microsecond=0)
    records: list[Reservation] = []

    for offset in range(days):
        day = start_date + timedelta(days=offset)
        if day.weekday() >= 5:
            continue

        cursor = datetime(day.year, day.month, day.day, 7, 0)
        for _ in range(rng.randint(0, 3)):
            cursor += timedelta(minutes=rng.choice([0, 30, 60, 90]))
            duration = timedelta(minutes=rng.choice([30, 60, 90, 120, 180]))
            end = cursor + duration
            if end.date() != day or end.hour >= 20:
                break

            owner_id, display_name = rng.choice(owners)
            records.append(
                Reservation(
                    reservation_id=f"draft-{len(records)}",
                    owner_id=owner_id,
                    owner_display_name=display_name,
                    start=cursor,
                    end=end,
                    created_at=now,
                    description=rng.choice(purposes),
                )
            )
            cursor = end

    return records
