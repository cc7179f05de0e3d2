"""Wall-clock helpers for weekly availability.

Slot times are ``HH:MM`` strings in ``settings.SCHEDULE_TIMEZONE``. Session
instants are stored as naive datetimes in that same zone so they compare
directly against an expanded slot.
"""
import re
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from src.config.settings import settings
from src.core.exceptions import ValidationError

HHMM_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> time:
    """Parse ``HH:MM`` (24h). Raises ``ValidationError`` when malformed."""
    match = HHMM_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError(
            f"Invalid time '{value}', expected HH:MM",
            details={"value": value},
        )
    return time(int(match.group(1)), int(match.group(2)))


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def normalize_hhmm(value: str) -> str:
    """'9:05' -> '09:05'. Zero-padded strings sort chronologically."""
    return format_hhmm(parse_hhmm(value))


def minutes_between(start: str, end: str) -> int:
    start_t, end_t = parse_hhmm(start), parse_hhmm(end)
    return (end_t.hour * 60 + end_t.minute) - (start_t.hour * 60 + start_t.minute)


def day_of_week(value: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return value.isoweekday() % 7


def to_wall_clock(value: datetime) -> datetime:
    """Convert to a naive datetime in the schedule timezone.

    Naive inputs are assumed to already be wall-clock.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(settings.SCHEDULE_TIMEZONE)).replace(tzinfo=None)


def schedule_now() -> datetime:
    """Current wall-clock time in the schedule timezone (naive)."""
    return datetime.now(ZoneInfo(settings.SCHEDULE_TIMEZONE)).replace(tzinfo=None)


def slot_interval(on: date, start: str, end: str) -> tuple[datetime, datetime]:
    """Instantiate a slot template on a concrete date."""
    start_dt = datetime.combine(on, parse_hhmm(start))
    end_dt = datetime.combine(on, parse_hhmm(end))
    return start_dt, end_dt


def day_bounds(on: date) -> tuple[datetime, datetime]:
    start = datetime.combine(on, time.min)
    return start, start + timedelta(days=1)
