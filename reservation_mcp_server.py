from __future__ import annotations

from datetime import date, datetime

from mcp.server.fastmcp import FastMCP

from car_reservation import (
    Account,
    BookingForm,
    BookingWorkflow,
    ReservationRepository,
    UserDirectory,
    YamlDocumentStore,
    month_grid,
    reservations_for_day,
)
from car_reservation.config import load_config

mcp = FastMCP(
    "Car Reservation MCP Server",
    instructions="Read the company car calendar and book slots on behalf of a signed-in user.",
    json_response=True,
)

CONFIG = load_config()
STORE = YamlDocumentStore(CONFIG.data_dir, composite_indexes=CONFIG.composite_indexes)
REPOSITORY = ReservationRepository(STORE, CONFIG.reservations_collection)
DIRECTORY = UserDirectory(STORE, CONFIG.users_collection)
WORKFLOW = BookingWorkflow(REPOSITORY, users=DIRECTORY)


def _serialize(record) -> dict[str, str]:
    return {
        "reservation_id": record.reservation_id,
        "owner": record.owner_display_name,
        "start": record.start.isoformat(timespec="minutes"),
        "end": record.end.isoformat(timespec="minutes"),
        "description": record.description,
    }


@mcp.resource("reservation://today")
async def todays_reservations() -> list[dict[str, str]]:
    """List today's car reservations ordered by start time."""
    return [_serialize(record) for record in reservations_for_day(date.today(), REPOSITORY.list_reservations())]


@mcp.tool()
def list_reservations_for_day(day_iso: str) -> list[dict[str, str]]:
    """Return the reservations starting on the given YYYY-MM-DD date."""
    target = date.fromisoformat(day_iso)
    return [_serialize(record) for record in reservations_for_day(target, REPOSITORY.list_reservations())]


@mcp.tool()
def month_overview(year: int, month: int) -> list[dict[str, object]]:
    """Return the 42-day month grid with a booked flag per day."""
    cells = month_grid(year, month, REPOSITORY.list_reservations(), today=datetime.now().date())
    return [cell.to_dict() for cell in cells]


@mcp.tool()
def book_slot(
    user_id: str,
    email: str,
    day_iso: str,
    start_time: str,
    end_time: str,
    description: str = "",
) -> dict[str, object]:
    """Book the car for the given user from start_time to end_time (HH:MM) on day_iso."""
    identity = DIRECTORY.identity_for(Account(user_id=user_id, email=email))
    form = BookingForm(date=day_iso, start_time=start_time, end_time=end_time, description=description)
    outcome = WORKFLOW.submit(identity, form)
    if not outcome.ok:
        return {"ok": False, "message": outcome.message}
    return {"ok": True, "reservation": _serialize(outcome.reservation)}


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
