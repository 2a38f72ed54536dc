from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable
import logging
import threading

from flask import Flask, g, jsonify, request

from .booking import Reservation
from .calendar_view import month_grid, reservations_for_day
from .config import AppConfig, load_config
from .errors import (
    AuthorizationError,
    BookingInProgressError,
    ConflictError,
    NotFoundError,
    ReservationError,
    SaveFailedError,
    ValidationError,
)
from .form_parsing import parse_date
from .reservations import ReservationRepository
from .users import Account, Identity, User, UserDirectory
from .workflow import BookingForm, BookingOutcome, BookingWorkflow
from .yaml_store import StorageError, YamlDocumentStore

logger = logging.getLogger("car_reservation.web")

USER_ID_HEADER = "X-User-Id"
USER_EMAIL_HEADER = "X-User-Email"

_STATUS_BY_ERROR: list[tuple[type[ReservationError], int]] = [
    (NotFoundError, 404),
    (AuthorizationError, 403),
    (ConflictError, 409),
    (BookingInProgressError, 429),
    (SaveFailedError, 500),
    (ValidationError, 400),
]


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
    config: AppConfig | None = None,
) -> Flask:
    app = Flask(__name__)
    settings = config or AppConfig()
    store = YamlDocumentStore(
        data_dir if data_dir is not None else settings.data_dir,
        composite_indexes=settings.composite_indexes,
    )
    repository = ReservationRepository(store, settings.reservations_collection)
    directory = UserDirectory(store, settings.users_collection)
    clock: Callable[[], datetime] = now_provider or datetime.now

    workflows: dict[str, BookingWorkflow] = {}
    workflows_lock = threading.Lock()

    def _workflow_for(identity: Identity) -> BookingWorkflow:
        with workflows_lock:
            workflow = workflows.get(identity.user_id)
            if workflow is None:
                workflow = BookingWorkflow(repository, users=directory, clock=clock)
                workflows[identity.user_id] = workflow
            return workflow

    def _serialize_reservation(record: Reservation, identity: Identity) -> dict[str, Any]:
        return {
            "reservation_id": record.reservation_id,
            "owner_id": record.owner_id,
            "owner_display_name": record.owner_display_name,
            "start": record.start.isoformat(timespec="minutes"),
            "end": record.end.isoformat(timespec="minutes"),
            "description": record.description,
            "created_at": record.created_at.isoformat(timespec="seconds"),
            "is_mine": record.is_owned_by(identity.user_id),
            "can_manage": identity.can_manage(record),
        }

    def _serialize_user(user: User) -> dict[str, Any]:
        return {"id": user.id, **user.to_dict()}

    def _outcome_response(outcome: BookingOutcome, identity: Identity, success_status: int = 200) -> Any:
        if outcome.ok:
            payload: dict[str, Any] = {"ok": True}
            if outcome.reservation is not None:
                payload["reservation"] = _serialize_reservation(outcome.reservation, identity)
            return jsonify(payload), success_status
        return _error_response(outcome.error or SaveFailedError())

    @app.before_request
    def resolve_identity() -> Any:
        if not request.path.startswith("/api/"):
            return None

        user_id = str(request.headers.get(USER_ID_HEADER, "")).strip()
        email = str(request.headers.get(USER_EMAIL_HEADER, "")).strip()
        if not user_id:
            return jsonify({"ok": False, "message": "Sign-in required."}), 401

        try:
            identity = directory.identity_for(Account(user_id=user_id, email=email))
        except ValidationError as error:
            return jsonify({"ok": False, "message": error.message}), 401
        if not identity.is_active:
            return jsonify({"ok": False, "message": "This user account has been disabled."}), 403
        g.identity = identity
        return None

    @app.errorhandler(StorageError)
    def handle_storage_error(error: StorageError) -> Any:
        logger.error("Storage failure while handling %s: %s", request.path, error)
        return jsonify({"ok": False, "message": "The reservation data is temporarily unavailable."}), 500

    @app.get("/api/me")
    def get_me() -> Any:
        identity: Identity = g.identity
        return jsonify(
            {
                "ok": True,
                "user_id": identity.user_id,
                "email": identity.email,
                "display_name": identity.display_name,
                "role": identity.role.value if identity.role is not None else None,
            }
        )

    @app.get("/api/calendar")
    def get_calendar() -> Any:
        identity: Identity = g.identity
        today = clock().date()
        # Both views come from one fresh snapshot per request.
        reservations = repository.list_reservations()
        try:
            selected = parse_date(request.args.get("date")) if request.args.get("date") else today
            year = int(request.args.get("year", selected.year))
            month = int(request.args.get("month", selected.month))
            cells = month_grid(year, month, reservations, today=today)
        except ValueError as error:
            return jsonify({"ok": False, "message": str(error)}), 400

        daily = reservations_for_day(selected, reservations)
        return jsonify(
            {
                "ok": True,
                "year": year,
                "month": month,
                "selected_date": selected.isoformat(),
                "days": [cell.to_dict() for cell in cells],
                "reservations": [_serialize_reservation(record, identity) for record in daily],
            }
        )

    @app.post("/api/reservations")
    def create_reservation() -> Any:
        identity: Identity = g.identity
        payload = request.get_json(silent=True) or {}
        form = _form_from_payload(payload)
        form.reservation_id = None
        return _outcome_response(_workflow_for(identity).submit(identity, form), identity, success_status=201)

    @app.post("/api/reservations/edit")
    def begin_edit() -> Any:
        identity: Identity = g.identity
        payload = request.get_json(silent=True) or {}
        reservation_id = str(payload.get("reservation_id", "")).strip()
        if not reservation_id:
            return jsonify({"ok": False, "message": "reservation_id is required."}), 400

        try:
            form = _workflow_for(identity).begin_edit(identity, reservation_id)
        except ReservationError as error:
            return _error_response(error)
        return jsonify(
            {
                "ok": True,
                "form": {
                    "reservation_id": form.reservation_id,
                    "date": form.date.isoformat() if isinstance(form.date, date) else form.date,
                    "start_time": form.start_time,
                    "end_time": form.end_time,
                    "description": form.description,
                },
            }
        )

    @app.post("/api/reservations/update")
    def update_reservation() -> Any:
        identity: Identity = g.identity
        payload = request.get_json(silent=True) or {}
        form = _form_from_payload(payload)
        if not form.reservation_id:
            return jsonify({"ok": False, "message": "reservation_id is required."}), 400
        return _outcome_response(_workflow_for(identity).submit(identity, form), identity)

    @app.post("/api/reservations/delete")
    def delete_reservation() -> Any:
        identity: Identity = g.identity
        payload = request.get_json(silent=True) or {}
        reservation_id = str(payload.get("reservation_id", "")).strip()
        if not reservation_id:
            return jsonify({"ok": False, "message": "reservation_id is required."}), 400
        if payload.get("confirm") is not True:
            return jsonify({"ok": False, "message": "Deletion must be confirmed."}), 400
        return _outcome_response(_workflow_for(identity).delete(identity, reservation_id), identity)

    @app.get("/api/users")
    def list_users() -> Any:
        identity: Identity = g.identity
        try:
            users = directory.list_users(identity)
        except ReservationError as error:
            return _error_response(error)
        return jsonify({"ok": True, "users": [_serialize_user(user) for user in users]})

    @app.post("/api/users/update")
    def update_user() -> Any:
        identity: Identity = g.identity
        payload = request.get_json(silent=True) or {}
        user_id = str(payload.get("user_id", "")).strip()
        if not user_id:
            return jsonify({"ok": False, "message": "user_id is required."}), 400

        if not any(key in payload for key in ("username", "role", "disabled")):
            return jsonify({"ok": False, "message": "Nothing to update."}), 400

        try:
            user = directory.update_user(
                identity,
                user_id,
                username=str(payload["username"]) if "username" in payload else None,
                role=str(payload["role"]) if "role" in payload else None,
                disabled=bool(payload["disabled"]) if "disabled" in payload else None,
            )
        except ReservationError as error:
            return _error_response(error)
        return jsonify({"ok": True, "user": _serialize_user(user)})

    return app


def _form_from_payload(payload: dict[str, Any]) -> BookingForm:
    def _text(key: str) -> str:
        value = payload.get(key)
        return str(value).strip() if value is not None else ""

    return BookingForm(
        date=_text("date") or None,
        start_time=_text("start_time"),
        end_time=_text("end_time"),
        description=_text("description"),
        reservation_id=_text("reservation_id") or None,
        owner_id=_text("owner_id") or None,
    )


def _error_response(error: ReservationError) -> Any:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return jsonify({"ok": False, "message": error.message}), status
    return jsonify({"ok": False, "message": error.message}), 400


def main() -> None:
    config = load_config()
    logging.basicConfig(level=config.log_level, format="%(asctime)s [%(levelname)s] %(message)s")
    app = create_app(config=config)
    logger.info("Serving reservations from %s on %s:%s", config.data_dir, config.host, config.port)
    app.run(host=config.host, port=config.port, debug=False)


if __name__ == "__main__":
    main()
