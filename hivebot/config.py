from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .eligibility import AUDIENCE_CHAT, AUDIENCE_REGISTRY, AUDIENCE_SOURCES


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR = BASE_DIR / "data"

WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _resolve_path(raw_path: str | None, default_path: Path) -> Path:
    if not raw_path:
        return default_path
    path = Path(raw_path).expanduser()
    if path.is_absolute():
        return path
    return (BASE_DIR / path).resolve()


# Load .env early so path env vars are available for module-level constants.
load_dotenv()

DATA_DIR = _resolve_path(os.getenv("DATA_DIR"), DEFAULT_DATA_DIR)
DB_PATH = _resolve_path(os.getenv("DB_PATH"), DATA_DIR / "hive.db")


@dataclass(frozen=True)
class AppConfig:
    telegram_bot_token: str
    audience_source: str = AUDIENCE_REGISTRY
    audience_chat_id: int | None = None
    checkin_weekday: int = 0
    checkin_time: time = time(10, 0)
    reminder_weekday: int = 3
    reminder_time: time = time(14, 0)
    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))
    send_delay_seconds: float = 0.1
    session_ttl_hours: float = 72.0
    admin_user_ids: tuple[int, ...] = ()


class ConfigError(RuntimeError):
    pass


def _parse_weekday(name: str, raw: str) -> int:
    value = raw.strip().lower()[:3]
    if value not in WEEKDAYS:
        raise ConfigError(f"{name} must be a weekday name (mon..sun)")
    return WEEKDAYS.index(value)


def _parse_time(name: str, raw: str) -> time:
    try:
        hours, minutes = raw.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError as exc:
        raise ConfigError(f"{name} must be HH:MM") from exc


def _parse_ids(raw: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in raw.replace(" ", "").split(",") if part)
    except ValueError as exc:
        raise ConfigError("ADMIN_USER_IDS must be a comma-separated list of Telegram user ids") from exc


def load_config() -> AppConfig:
    load_dotenv()

    telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    if not telegram_bot_token:
        raise ConfigError("Missing TELEGRAM_BOT_TOKEN in environment/.env")

    audience_source = os.getenv("AUDIENCE_SOURCE", AUDIENCE_REGISTRY).strip().lower() or AUDIENCE_REGISTRY
    if audience_source not in AUDIENCE_SOURCES:
        raise ConfigError(f"AUDIENCE_SOURCE must be one of: {', '.join(AUDIENCE_SOURCES)}")

    audience_chat_id: int | None = None
    chat_id_raw = os.getenv("AUDIENCE_CHAT_ID", "").strip()
    if chat_id_raw:
        try:
            audience_chat_id = int(chat_id_raw)
        except ValueError as exc:
            raise ConfigError("AUDIENCE_CHAT_ID must be a numeric Telegram chat id") from exc
    if audience_source == AUDIENCE_CHAT and audience_chat_id is None:
        raise ConfigError("AUDIENCE_CHAT_ID is required when AUDIENCE_SOURCE=chat")

    try:
        tz = ZoneInfo(os.getenv("SCHEDULE_TIMEZONE", "UTC").strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError("SCHEDULE_TIMEZONE must be an IANA timezone name") from exc

    try:
        send_delay_seconds = float(os.getenv("SEND_DELAY_SECONDS", "0.1").strip())
        if send_delay_seconds < 0 or send_delay_seconds > 10:
            raise ValueError
    except ValueError as exc:
        raise ConfigError("SEND_DELAY_SECONDS must be a float in range [0, 10]") from exc

    try:
        session_ttl_hours = float(os.getenv("SESSION_TTL_HOURS", "72").strip())
        if session_ttl_hours <= 0:
            raise ValueError
    except ValueError as exc:
        raise ConfigError("SESSION_TTL_HOURS must be a positive number") from exc

    return AppConfig(
        telegram_bot_token=telegram_bot_token,
        audience_source=audience_source,
        audience_chat_id=audience_chat_id,
        checkin_weekday=_parse_weekday("CHECKIN_WEEKDAY", os.getenv("CHECKIN_WEEKDAY", "mon")),
        checkin_time=_parse_time("CHECKIN_TIME", os.getenv("CHECKIN_TIME", "10:00")),
        reminder_weekday=_parse_weekday("REMINDER_WEEKDAY", os.getenv("REMINDER_WEEKDAY", "thu")),
        reminder_time=_parse_time("REMINDER_TIME", os.getenv("REMINDER_TIME", "14:00")),
        timezone=tz,
        send_delay_seconds=send_delay_seconds,
        session_ttl_hours=session_ttl_hours,
        admin_user_ids=_parse_ids(os.getenv("ADMIN_USER_IDS", "")),
    )


def ensure_data_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
