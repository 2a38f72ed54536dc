from .booking import Reservation, TimeRange, can_reserve, has_time_overlap
from .calendar_view import CalendarDay, LiveCalendar, month_grid, reservations_for_day, shift_month
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
from .reservations import ReservationRepository, generate_test_reservations, parse_reservation
from .users import Account, Identity, Role, User, UserDirectory, format_username
from .workflow import BookingForm, BookingOutcome, BookingState, BookingWorkflow
from .yaml_store import (
	DocumentNotFoundError,
	IndexUnavailableError,
	StorageError,
	YamlDocumentStore,
)

__all__ = [
	"Reservation",
	"TimeRange",
	"can_reserve",
	"has_time_overlap",
	"CalendarDay",
	"LiveCalendar",
	"month_grid",
	"reservations_for_day",
	"shift_month",
	"ConflictDetector",
	"AuthorizationError",
	"BookingInProgressError",
	"ConflictError",
	"NotFoundError",
	"PastReservationError",
	"ReservationError",
	"SaveFailedError",
	"ValidationError",
	"ReservationRepository",
	"generate_test_reservations",
	"parse_reservation",
	"Account",
	"Identity",
	"Role",
	"User",
	"UserDirectory",
	"format_username",
	"BookingForm",
	"BookingOutcome",
	"BookingState",
	"BookingWorkflow",
	"DocumentNotFoundError",
	"IndexUnavailableError",
	"StorageError",
	"YamlDocumentStore",
]
