"""Configuration loading for the car reservation service."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping
import os

import yaml

from .reservations import RESERVATIONS_COLLECTION
from .users import USERS_COLLECTION

CONFIG_ENV_VAR = "CAR_RESERVATION_CONFIG"
DATA_DIR_ENV_VAR = "CAR_RESERVATION_DATA_DIR"


@dataclass(frozen=True)
class AppConfig:
    """Settings shared by the web app, the MCP server and the scripts."""

    data_dir: Path = Path("data")
    reservations_collection: str = RESERVATIONS_COLLECTION
    users_collection: str = USERS_COLLECTION
    composite_indexes: tuple[tuple[str, ...], ...] = field(default_factory=tuple)
    host: str = "127.0.0.1"
    port: int = 5000
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Mapping[str, Any], base_path: Path | None = None) -> "AppConfig":
        """Create an :class:`AppConfig` from raw dictionary data."""
        unknown = set(data) - {
            "data_dir",
            "reservations_collection",
            "users_collection",
            "composite_indexes",
            "host",
            "port",
            "log_level",
        }
        if unknown:
            raise ValueError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        raw_data_dir = Path(str(data.get("data_dir", "data"))).expanduser()
        if not raw_data_dir.is_absolute() and base_path is not None:
            raw_data_dir = base_path / raw_data_dir

        indexes = data.get("composite_indexes") or []
        if not isinstance(indexes, list) or not all(isinstance(entry, list) for entry in indexes):
            raise ValueError("composite_indexes must be a list of field name lists")

        port = int(data.get("port", 5000))
        if not 0 < port < 65536:
            raise ValueError(f"Invalid port: {port}")

        return AppConfig(
            data_dir=raw_data_dir,
            reservations_collection=str(data.get("reservations_collection", RESERVATIONS_COLLECTION)),
            users_collection=str(data.get("users_collection", USERS_COLLECTION)),
            composite_indexes=tuple(tuple(str(name) for name in entry) for entry in indexes),
            host=str(data.get("host", "127.0.0.1")),
            port=port,
            log_level=str(data.get("log_level", "INFO")).upper(),
        )


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from ``path`` or ``$CAR_RESERVATION_CONFIG``.

    Without a file the defaults are used. ``$CAR_RESERVATION_DATA_DIR``
    always wins for the data directory.
    """
    config_path = path or os.environ.get(CONFIG_ENV_VAR)
    if config_path:
        resolved = Path(config_path).expanduser()
        payload = yaml.safe_load(resolved.read_text(encoding="utf-8")) or {}
        if not isinstance(payload, dict):
            raise ValueError(f"Configuration file {resolved} must contain a mapping")
        config = AppConfig.from_dict(payload, base_path=resolved.parent)
    else:
        config = AppConfig()

    data_dir_override = os.environ.get(DATA_DIR_ENV_VAR)
    if data_dir_override:
        config = replace(config, data_dir=Path(data_dir_override).expanduser())
    return config
