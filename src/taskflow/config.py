# src/taskflow/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (email is optional).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKFLOW"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
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

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Console ----
    console_enabled: bool
    console_owner_id: str

    # ---- Sweep ----
    sweep_enabled: bool
    sweep_interval_seconds: float
    sweep_single_flight: bool
    due_soon_hours: int
    aging_days: int

    # ---- Email (reminders) ----
    email_enabled: bool
    email_host: str
    email_port: int
    email_user: str
    email_password: str
    email_secure: bool
    from_name: str
    from_email: str
    reminder_email: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskflow") or "taskflow"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskflow"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        console_owner_id = _env(_k("CONSOLE_OWNER_ID"), "local").strip() or "local"

        sweep_enabled = _env_bool(_k("SWEEP_ENABLED"), True)
        sweep_interval_seconds = _env_float(_k("SWEEP_INTERVAL_SECONDS"), 60.0)
        sweep_single_flight = _env_bool(_k("SWEEP_SINGLE_FLIGHT"), True)
        due_soon_hours = _env_int(_k("DUE_SOON_HOURS"), 24)
        aging_days = _env_int(_k("AGING_DAYS"), 7)

        # Unprefixed EMAIL_* names are accepted for compatibility with existing .env files.
        email_host = (_first_env(_k("EMAIL_HOST"), "EMAIL_HOST", default="") or "").strip()
        email_port = _env_int(_k("EMAIL_PORT"), _env_int("EMAIL_PORT", 587))
        email_user = (_first_env(_k("EMAIL_USER"), "EMAIL_USER", default="") or "").strip()
        email_password = _first_env(_k("EMAIL_PASS"), "EMAIL_PASS", default="") or ""
        email_secure = _env_bool(_k("EMAIL_SECURE"), _env_bool("EMAIL_SECURE", False))
        from_name = (_first_env(_k("FROM_NAME"), "FROM_NAME", default=app_name) or app_name).strip()
        from_email = (_first_env(_k("FROM_EMAIL"), "FROM_EMAIL", default="") or "").strip()
        reminder_email = _env(_k("REMINDER_EMAIL"), "").strip()

        email_enabled = _env_bool(_k("EMAIL_ENABLED"), bool(email_host))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            console_enabled=console_enabled,
            console_owner_id=console_owner_id,
            sweep_enabled=sweep_enabled,
            sweep_interval_seconds=sweep_interval_seconds,
            sweep_single_flight=sweep_single_flight,
            due_soon_hours=due_soon_hours,
            aging_days=aging_days,
            email_enabled=email_enabled,
            email_host=email_host,
            email_port=email_port,
            email_user=email_user,
            email_password=email_password,
            email_secure=email_secure,
            from_name=from_name,
            from_email=from_email,
            reminder_email=reminder_email,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
