from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable
import logging
import threading

from .booking import Reservation
from .conflicts import ConflictDetector
from .errors import (
    AuthorizationError,
    BookingInProgressError,
    ConflictError,
    NotFoundError,
    PastReservationError,
    ReservationError,
    SaveFailedError,
    ValidationError,
)
from .form_parsing import compose_interval, format_time_of_day
from .reservations import ReservationRepository
from .users import Identity, UserDirectory, display_name_for
from .yaml_store import DocumentNotFoundError, StorageError

logger = logging.getLogger("car_reservation.workflow")


class BookingState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CONFLICT_CHECKING = "conflict_checking"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BookingForm:
    date: date | str | None = None
    start_time: str = ""
    end_time: str = ""
    description: str = ""
    reservation_id: str | None = None
    owner_id: str | None = None

    @property
    def is_edit(self) -> bool:
        return bool(self.reservation_id)

    def clear(self) -> None:
        self.date = None
        self.start_time = ""
        self.end_time = ""
        self.description = ""
        self.owner_id = None

    @staticmethod
    def for_reservation(reservation: Reservation) -> "BookingForm":
        return BookingForm(
            date=reservation.start.date(),
            start_time=format_time_of_day(reservation.start),
            end_time=format_time_of_day(reservation.end),
            description=reservation.description,
            reservation_id=reservation.reservation_id,
        )


@dataclass(frozen=True)
class BookingOutcome:
    state: BookingState
    reservation: Reservation | None = None
    error: ReservationError | None = None

    @property
    def ok(self) -> bool:
        return self.state is BookingState.SUCCEEDED

    @property
    def message(self) -> str | None:
        return self.error.message if self.error is not None else None


class BookingWorkflow:
    """Create, edit and delete reservations for one client.

    Only one submission runs at a time. The conflict check and the write are
    separate store operations, so two clients racing for the same slot can
    both succeed; every writer re-checks before writing and nothing more.
    """

    def __init__(
        self,
        repository: ReservationRepository,
        users: UserDirectory | None = None,
        detector: ConflictDetector | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.users = users
        self.detector = detector or ConflictDetector(repository)
        self._clock: Callable[[], datetime] = clock or datetime.now
        self._busy = threading.Lock()
        self.state = BookingState.IDLE

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def begin_edit(self, identity: Identity, reservation_id: str) -> BookingForm:
        existing = self._load(reservation_id)
        self._check_editable(identity, existing)
        return BookingForm.for_reservation(existing)

    def submit(self, identity: Identity, form: BookingForm) -> BookingOutcome:
        if not self._busy.acquire(blocking=False):
            return BookingOutcome(BookingState.FAILED, error=BookingInProgressError())
        try:
            outcome = self._run(identity, form)
        finally:
            self._transition(BookingState.IDLE)
            self._busy.release()

        if outcome.ok and not form.is_edit:
            form.clear()
        return outcome

    def delete(self, identity: Identity, reservation_id: str) -> BookingOutcome:
        try:
            existing = self._load(reservation_id)
            if not identity.can_manage(existing):
                raise AuthorizationError("You can only delete your own reservations.")
        except ReservationError as error:
            return BookingOutcome(BookingState.FAILED, error=error)

        try:
            self.repository.delete(existing.reservation_id)
        except DocumentNotFoundError:
            return BookingOutcome(BookingState.FAILED, error=NotFoundError())
        except StorageError:
            logger.exception("Deleting reservation %s failed", reservation_id)
            return BookingOutcome(
                BookingState.FAILED,
                error=SaveFailedError("Failed to delete the reservation. Please try again."),
            )

        logger.info("Reservation %s deleted by %s", reservation_id, identity.user_id)
        return BookingOutcome(BookingState.SUCCEEDED, reservation=existing)

    def _run(self, identity: Identity, form: BookingForm) -> BookingOutcome:
        existing: Reservation | None = None
        try:
            if form.is_edit:
                existing = self._load(str(form.reservation_id))
                self._check_editable(identity, existing)
                if form.owner_id and form.owner_id != existing.owner_id:
                    raise AuthorizationError("The owner of an existing reservation cannot be changed.")
            elif not identity.is_active:
                raise AuthorizationError("Your account is not allowed to make reservations.")

            self._transition(BookingState.VALIDATING)
            start, end = compose_interval(form.date, form.start_time, form.end_time)
            description = (form.description or "").strip()

            self._transition(BookingState.CONFLICT_CHECKING)
            exclude_id = existing.reservation_id if existing is not None else None
            if self.detector.has_conflict(start, end, exclude_id=exclude_id):
                raise ConflictError()

            owner_id, owner_name = self._resolve_owner(identity, form, existing)
        except ReservationError as error:
            return self._fail(error)
        except StorageError:
            logger.exception("Reading reservations failed during booking")
            return self._fail(SaveFailedError())

        self._transition(BookingState.PERSISTING)
        try:
            if existing is not None:
                self.repository.update(existing.reservation_id, start, end, description)
                saved = Reservation(
                    reservation_id=existing.reservation_id,
                    owner_id=existing.owner_id,
                    owner_display_name=existing.owner_display_name,
                    start=start,
                    end=end,
                    created_at=existing.created_at,
                    description=description,
                )
            else:
                saved = self.repository.create(
                    owner_id=owner_id,
                    owner_display_name=owner_name,
                    start=start,
                    end=end,
                    description=description,
                    created_at=self._clock(),
                )
        except (StorageError, DocumentNotFoundError):
            logger.exception("Saving reservation for %s failed", owner_id)
            return self._fail(SaveFailedError())

        self._transition(BookingState.SUCCEEDED)
        logger.info(
            "Reservation %s %s for %s (%s - %s)",
            saved.reservation_id,
            "updated" if existing is not None else "created",
            saved.owner_id,
            saved.start.isoformat(timespec="minutes"),
            saved.end.isoformat(timespec="minutes"),
        )
        return BookingOutcome(BookingState.SUCCEEDED, reservation=saved)

    def _resolve_owner(
        self,
        identity: Identity,
        form: BookingForm,
        existing: Reservation | None,
    ) -> tuple[str, str]:
        if existing is not None:
            return existing.owner_id, existing.owner_display_name

        if form.owner_id and form.owner_id != identity.user_id:
            if not identity.is_admin:
                raise AuthorizationError("Only administrators can book on behalf of another user.")
            target = self.users.get(form.owner_id) if self.users is not None else None
            if target is None or target.disabled:
                raise ValidationError("The selected user does not exist or is disabled.")
            return target.id, display_name_for(target, target.email)

        own_record = self.users.get(identity.user_id) if self.users is not None else None
        if own_record is not None:
            return identity.user_id, display_name_for(own_record, identity.email)
        return identity.user_id, identity.display_name or display_name_for(None, identity.email)

    def _load(self, reservation_id: str) -> Reservation:
        existing = self.repository.get(reservation_id)
        if existing is None:
            raise NotFoundError()
        return existing

    def _check_editable(self, identity: Identity, existing: Reservation) -> None:
        if existing.start < self._clock():
            raise PastReservationError()
        if not identity.can_manage(existing):
            raise AuthorizationError("You can only edit your own reservations.")

    def _fail(self, error: ReservationError) -> BookingOutcome:
        self._transition(BookingState.FAILED)
        logger.info("Booking attempt failed: %s", error.message)
        return BookingOutcome(BookingState.FAILED, error=error)

    def _transition(self, state: BookingState) -> None:
        logger.debug("Booking state %s -> %s", self.state.value, state.value)
        self.state = state
