# src/exam_tracker/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No service URL required at import time (offline demo mode otherwise).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "EXAM"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Analysis service ----
    api_base_url: str
    http_timeout_seconds: float | None
    offline_polls_to_complete: int

    # ---- Polling ----
    poll_interval_seconds: float

    # ---- Export ----
    export_dir: Path
    export_extension: str

    @property
    def offline(self) -> bool:
        return not self.api_base_url

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "exam-tracker").strip() or "exam-tracker"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/exam_tracker"))

        api_base_url = _env(_k("API_BASE_URL"), "").strip().rstrip("/")
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), None)
        if http_timeout_seconds is not None and http_timeout_seconds <= 0:
            http_timeout_seconds = None
        offline_polls_to_complete = max(1, _env_int(_k("OFFLINE_POLLS_TO_COMPLETE"), 2))

        poll_interval_seconds = _env_float(_k("POLL_INTERVAL_SECONDS"), 1.5) or 1.5
        poll_interval_seconds = max(0.05, poll_interval_seconds)

        export_dir = _env_path(_k("EXPORT_DIR"), Path("."))
        export_extension = _env(_k("EXPORT_EXTENSION"), "xlsx").strip().lstrip(".") or "xlsx"

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            api_base_url=api_base_url,
            http_timeout_seconds=http_timeout_seconds,
            offline_polls_to_complete=offline_polls_to_complete,
            poll_interval_seconds=poll_interval_seconds,
            export_dir=export_dir,
            export_extension=export_extension,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
