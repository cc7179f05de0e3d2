"""Plain helpers shared by test modules."""
from datetime import date, datetime, time, timedelta

from src.core.security import create_access_token
from src.domains.auth.guards import Actor
from src.domains.schedule.timeutils import schedule_now
from src.domains.users.models import User


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=user.role)


def auth_headers(user: User) -> dict[str, str]:
    """Bearer headers for a user."""
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


def next_weekday(day_of_week: int, weeks_ahead: int = 0) -> date:
    """Next date strictly after today falling on ``day_of_week`` (0=Sunday)."""
    today = schedule_now().date()
    offset = (day_of_week - today.isoweekday() % 7) % 7 or 7
    return today + timedelta(days=offset + 7 * weeks_ahead)


def at(on: date, hour: int, minute: int = 0) -> datetime:
    """Wall-clock instant on a date."""
    return datetime.combine(on, time(hour, minute))
