"""
Resolves the auto-checkout run configuration from the ``system_settings``
key/value table into an immutable :class:`RunSettings` snapshot.

The snapshot is taken once at the start of a run and handed to every step,
so a settings edit made mid-run never changes the rules halfway through.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import SystemSetting

logger = logging.getLogger(__name__)

ENABLED_KEY = "auto_checkout_enabled"
TIME_KEY = "auto_checkout_time"
GRACE_KEY = "auto_checkout_grace_minutes"
ROOM_RATE_KEY = "auto_checkout_room_rate"
HALL_RATE_KEY = "auto_checkout_hall_rate"
LAST_RUN_KEY = "last_auto_checkout_run"

LAST_RUN_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULTS = {
    ENABLED_KEY: "1",
    TIME_KEY: "10:00",
    GRACE_KEY: "30",
    ROOM_RATE_KEY: "100",
    HALL_RATE_KEY: "500",
    LAST_RUN_KEY: "",
}


@dataclass(frozen=True)
class RunSettings:
    enabled: bool = True
    checkout_time: time = time(10, 0)
    grace_minutes: int = 30
    room_rate: Decimal = Decimal("100")
    hall_rate: Decimal = Decimal("500")
    last_run: datetime | None = None
    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo(settings.TIMEZONE))


def get_timezone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def _parse_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_time(value: str) -> time:
    hours, minutes = value.strip().split(":")[:2]
    return time(int(hours), int(minutes))


def _parse_rate(value: str) -> Decimal:
    rate = Decimal(value.strip())
    if rate < 0:
        raise ValueError("rate must not be negative")
    return rate


def _parse_grace(value: str) -> int:
    grace = int(value.strip())
    if grace < 0:
        raise ValueError("grace window must not be negative")
    return grace


def _parse_last_run(value: str) -> datetime | None:
    if not value.strip():
        return None
    return datetime.strptime(value.strip()[:19], LAST_RUN_FORMAT)


def _resolve(raw: dict[str, str], key: str, parser):
    value = raw.get(key)
    if value is None:
        value = DEFAULTS[key]
    try:
        return parser(value)
    except (ValueError, TypeError, InvalidOperation):
        logger.warning("Invalid value %r for setting %s; using default %r", value, key, DEFAULTS[key])
        return parser(DEFAULTS[key])


def parse_run_settings(raw: dict[str, str], tz: ZoneInfo | None = None) -> RunSettings:
    """Builds a RunSettings from raw key/value strings, defaulting per key."""
    return RunSettings(
        enabled=_resolve(raw, ENABLED_KEY, _parse_flag),
        checkout_time=_resolve(raw, TIME_KEY, _parse_time),
        grace_minutes=_resolve(raw, GRACE_KEY, _parse_grace),
        room_rate=_resolve(raw, ROOM_RATE_KEY, _parse_rate),
        hall_rate=_resolve(raw, HALL_RATE_KEY, _parse_rate),
        last_run=_resolve(raw, LAST_RUN_KEY, _parse_last_run),
        timezone=tz or get_timezone(),
    )


def get_all(db: Session) -> dict[str, str]:
    rows = db.query(SystemSetting.setting_key, SystemSetting.setting_value).all()
    return {key: value for key, value in rows if value is not None}


def load_run_settings(db: Session, tz: ZoneInfo | None = None) -> RunSettings:
    """
    Reads the settings table once. If the store is unreachable (missing table,
    lost connection) the run continues on built-in defaults.
    """
    try:
        raw = get_all(db)
    except SQLAlchemyError as e:
        logger.warning("Settings store unavailable, using defaults: %s", e)
        db.rollback()
        raw = {}
    return parse_run_settings(raw, tz)
