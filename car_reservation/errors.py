from __future__ import annotations


class ReservationError(ValueError):
    """Base class for failures a booking attempt reports back to the caller."""

    default_message = "The reservation request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(ReservationError):
    default_message = "The reservation form is incomplete or invalid."


class ConflictError(ReservationError):
    default_message = "This time slot is already booked."


class AuthorizationError(ReservationError):
    default_message = "You are not allowed to change this reservation."


class PastReservationError(AuthorizationError):
    default_message = "Past reservations cannot be edited."


class NotFoundError(ReservationError):
    default_message = "Reservation not found."


class SaveFailedError(ReservationError):
    default_message = "Failed to save the reservation. Please try again."


class BookingInProgressError(ReservationError):
    default_message = "A booking request is already being processed."
