"""Central import of all domain models.

This file imports all models to ensure they are registered with SQLAlchemy's
metadata before any database operations (like creating tables).
"""

# Users domain
from src.domains.users.models import (
    User,
    UserRole,
)

# Schedule domain
from src.domains.schedule.models import (
    ApprovalStatus,
    CoachAvailability,
    ScheduledSession,
    ScheduledSessionStatus,
    SessionType,
    TimeSlot,
)

# Notifications domain
from src.domains.notifications.models import (
    ScheduleNotification,
    ScheduleNotificationType,
)

__all__ = [
    # Users
    "User",
    "UserRole",
    # Schedule
    "ApprovalStatus",
    "CoachAvailability",
    "ScheduledSession",
    "ScheduledSessionStatus",
    "SessionType",
    "TimeSlot",
    # Notifications
    "ScheduleNotification",
    "ScheduleNotificationType",
]
