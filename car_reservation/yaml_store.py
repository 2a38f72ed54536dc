from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Iterable
import logging
import operator
import re
import shutil
import threading
from uuid import uuid4

import yaml

logger = logging.getLogger("car_reservation.store")

RANGE_OPERATORS = {"<": operator.lt, "<=": operator.le, ">": operator.gt, ">=": operator.ge}
EQUALITY_OPERATORS = {"==": operator.eq, "!=": operator.ne}
_OPERATORS = {**RANGE_OPERATORS, **EQUALITY_OPERATORS}
_COLLECTION_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

EVENT_LOG_NAME = "store_events.yaml"


class StorageError(RuntimeError):
    pass


class IndexUnavailableError(StorageError):
    """Raised when a query needs a composite index the store does not have."""

    code = "failed-precondition"


class DocumentNotFoundError(LookupError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {doc_id!r} not found in collection {collection!r}")
        self.collection = collection
        self.doc_id = doc_id


@dataclass(frozen=True)
class Document:
    doc_id: str
    fields: dict[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def to_row(self) -> dict[str, Any]:
        return {"id": self.doc_id, **self.fields}

    @staticmethod
    def from_row(row: dict[str, Any]) -> "Document":
        return Document(
            doc_id=str(row["id"]),
            fields={key: value for key, value in row.items() if key != "id"},
        )


SnapshotCallback = Callable[[list[Document]], None]


class Subscription:
    def __init__(self, key: Path, collection: str, callback: SnapshotCallback) -> None:
        self.key = key
        self.collection = collection
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        with _REGISTRY_LOCK:
            self.active = False
            listeners = _SUBSCRIPTIONS.get(self.key, [])
            if self in listeners:
                listeners.remove(self)
            if not listeners:
                _SUBSCRIPTIONS.pop(self.key, None)


# Subscriptions are shared by every store instance in the process that points at
# the same collection file, so two "clients" on one data directory see each other.
_SUBSCRIPTIONS: dict[Path, list[Subscription]] = {}
_REGISTRY_LOCK = threading.Lock()
_WRITE_LOCK = threading.RLock()


def to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def to_storage_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return value


class YamlDocumentStore:
    def __init__(
        self,
        base_dir: str | Path = "data",
        composite_indexes: Iterable[Iterable[str]] = (),
    ) -> None:
        self.base_dir = Path(base_dir)
        self.log_file = self.base_dir / EVENT_LOG_NAME
        self.composite_indexes = {frozenset(fields) for fields in composite_indexes}
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        if not self.log_file.exists():
            self.log_file.write_text("[]\n", encoding="utf-8")

    def collection_path(self, collection: str) -> Path:
        if not _COLLECTION_NAME_RE.match(collection or ""):
            raise ValueError(f"Invalid collection name: {collection!r}")
        return self.base_dir / f"{collection}.yaml"

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict) and (path == self.log_file or row.get("id") is not None):
                sanitized.append(row)
            elif path == self.log_file:
                logger.warning("Skipping malformed event log row %d", index)
            else:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping with an id",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise StorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted YAML file %s", path)

        logger.warning("Recovered corrupted YAML file %s: %s", path.name, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any]) -> None:
        timestamp = datetime.now().isoformat(timespec="seconds")
        events = self._read_yaml_list(self.log_file)
        events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
        self._write_yaml_list(self.log_file, events)

    def read_events(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.log_file)

    def read_all(self, collection: str) -> list[Document]:
        rows = self._read_yaml_list(self.collection_path(collection))
        return [Document.from_row(row) for row in rows]

    def get_one(self, collection: str, doc_id: str) -> Document:
        for document in self.read_all(collection):
            if document.doc_id == doc_id:
                return document
        raise DocumentNotFoundError(collection, doc_id)

    def query_where(self, collection: str, *conditions: tuple[str, str, Any]) -> list[Document]:
        """Return documents matching every ``(field, operator, value)`` condition.

        Range conditions over more than one field need a declared composite
        index, otherwise :class:`IndexUnavailableError` is raised. Documents
        lacking a queried field never match.
        """
        if not conditions:
            return self.read_all(collection)

        range_fields: set[str] = set()
        for field_name, op, _value in conditions:
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported query operator: {op!r}")
            if op in RANGE_OPERATORS:
                range_fields.add(field_name)

        if len(range_fields) > 1 and frozenset(range_fields) not in self.composite_indexes:
            raise IndexUnavailableError(
                f"{IndexUnavailableError.code}: query on {', '.join(sorted(range_fields))} requires a composite index"
            )

        return [
            document
            for document in self.read_all(collection)
            if all(_matches(document.fields, field_name, op, value) for field_name, op, value in conditions)
        ]

    def create(self, collection: str, fields: dict[str, Any]) -> str:
        doc_id = str(uuid4())
        path = self.collection_path(collection)
        with _WRITE_LOCK:
            rows = self._read_yaml_list(path)
            rows.append(Document(doc_id, _storage_fields(fields)).to_row())
            self._write_yaml_list(path, rows)
            self._log_event("DOCUMENT_CREATED", {"collection": collection, "id": doc_id})
            self._notify(collection)
        return doc_id

    def set(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        path = self.collection_path(collection)
        with _WRITE_LOCK:
            rows = [row for row in self._read_yaml_list(path) if str(row.get("id")) != doc_id]
            rows.append(Document(doc_id, _storage_fields(fields)).to_row())
            self._write_yaml_list(path, rows)
            self._log_event("DOCUMENT_SET", {"collection": collection, "id": doc_id})
            self._notify(collection)

    def update(self, collection: str, doc_id: str, partial_fields: dict[str, Any]) -> None:
        path = self.collection_path(collection)
        with _WRITE_LOCK:
            rows = self._read_yaml_list(path)
            index = _find_row(rows, doc_id)
            if index < 0:
                raise DocumentNotFoundError(collection, doc_id)
            rows[index] = {**rows[index], **_storage_fields(partial_fields), "id": doc_id}
            self._write_yaml_list(path, rows)
            self._log_event(
                "DOCUMENT_UPDATED",
                {"collection": collection, "id": doc_id, "fields": sorted(partial_fields)},
            )
            self._notify(collection)

    def delete(self, collection: str, doc_id: str) -> None:
        path = self.collection_path(collection)
        with _WRITE_LOCK:
            rows = self._read_yaml_list(path)
            index = _find_row(rows, doc_id)
            if index < 0:
                raise DocumentNotFoundError(collection, doc_id)
            del rows[index]
            self._write_yaml_list(path, rows)
            self._log_event("DOCUMENT_DELETED", {"collection": collection, "id": doc_id})
            self._notify(collection)

    def subscribe_all(self, collection: str, callback: SnapshotCallback) -> Subscription:
        """Register ``callback`` for full snapshots of ``collection``.

        The current snapshot is delivered before this returns; afterwards every
        write to the collection delivers a fresh full snapshot until
        :meth:`Subscription.unsubscribe` is called.
        """
        key = self.collection_path(collection).resolve()
        subscription = Subscription(key, collection, callback)
        with _REGISTRY_LOCK:
            _SUBSCRIPTIONS.setdefault(key, []).append(subscription)
        with _WRITE_LOCK:
            _deliver(subscription, self.read_all(collection))
        return subscription

    def _notify(self, collection: str) -> None:
        key = self.collection_path(collection).resolve()
        with _REGISTRY_LOCK:
            listeners = list(_SUBSCRIPTIONS.get(key, []))
        if not listeners:
            return

        snapshot = self.read_all(collection)
        for subscription in listeners:
            _deliver(subscription, snapshot)


def _deliver(subscription: Subscription, snapshot: list[Document]) -> None:
    if not subscription.active:
        return
    try:
        subscription.callback(list(snapshot))
    except Exception:
        logger.exception("Snapshot listener for %s failed", subscription.collection)


def _storage_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: to_storage_value(value) for key, value in fields.items() if key != "id"}


def _find_row(rows: list[dict[str, Any]], doc_id: str) -> int:
    for index, row in enumerate(rows):
        if str(row.get("id")) == doc_id:
            return index
    return -1


def _matches(fields: dict[str, Any], field_name: str, op: str, value: Any) -> bool:
    if field_name not in fields or fields[field_name] is None:
        return False

    stored = fields[field_name]
    if isinstance(value, datetime):
        stored = to_datetime(stored)
        if stored is None:
            return False
    try:
        return bool(_OPERATORS[op](stored, value))
    except TypeError:
        return False
