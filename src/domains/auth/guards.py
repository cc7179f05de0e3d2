"""Actor model and role guards.

Every scheduling operation receives an explicit ``Actor``. Guards return an
``AuthorizationResult`` so callers can inspect the decision;
``ensure_allowed`` turns a denial into ``AuthorizationError``.
"""
import uuid
from dataclasses import dataclass

from src.core.exceptions import AuthorizationError
from src.domains.users.models import UserRole


@dataclass(frozen=True)
class Actor:
    """The authenticated caller."""

    id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_coach(self) -> bool:
        return self.role == UserRole.COACH

    @property
    def is_parent(self) -> bool:
        return self.role == UserRole.PARENT


@dataclass(frozen=True)
class AuthorizationResult:
    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> "AuthorizationResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "AuthorizationResult":
        return cls(allowed=False, reason=reason)


def ensure_allowed(result: AuthorizationResult) -> None:
    if not result.allowed:
        raise AuthorizationError(result.reason or "Access denied")


def require_role(actor: Actor, *roles: UserRole) -> AuthorizationResult:
    if actor.role in roles:
        return AuthorizationResult.allow()
    allowed = ", ".join(r.value for r in roles)
    return AuthorizationResult.deny(f"This action requires role: {allowed}")


def require_admin(actor: Actor) -> AuthorizationResult:
    return require_role(actor, UserRole.ADMIN)


def can_manage_availability(actor: Actor, coach_id: uuid.UUID) -> AuthorizationResult:
    """Coaches edit their own availability; admins may act for any coach."""
    if actor.is_admin or (actor.is_coach and actor.id == coach_id):
        return AuthorizationResult.allow()
    return AuthorizationResult.deny("You can only manage your own availability")


def can_book_for(actor: Actor, coach_id: uuid.UUID, student_id: uuid.UUID) -> AuthorizationResult:
    if actor.is_admin:
        return AuthorizationResult.allow()
    if actor.is_parent and actor.id == student_id:
        return AuthorizationResult.allow()
    if actor.is_coach and actor.id == coach_id:
        return AuthorizationResult.allow()
    return AuthorizationResult.deny("You cannot book sessions for this student")


def is_participant(actor: Actor, coach_id: uuid.UUID, student_id: uuid.UUID) -> AuthorizationResult:
    """Admins, the session's coach, or the session's student."""
    if actor.is_admin or actor.id in (coach_id, student_id):
        return AuthorizationResult.allow()
    return AuthorizationResult.deny("You do not have access to this session")


def can_conclude_session(actor: Actor, coach_id: uuid.UUID) -> AuthorizationResult:
    """Completion and no-show are recorded by the coach or an admin."""
    if actor.is_admin or (actor.is_coach and actor.id == coach_id):
        return AuthorizationResult.allow()
    return AuthorizationResult.deny("Only the session's coach can record its outcome")


def can_view_user(actor: Actor, user_id: uuid.UUID) -> AuthorizationResult:
    if actor.is_admin or actor.id == user_id:
        return AuthorizationResult.allow()
    return AuthorizationResult.deny("You do not have permission to view this calendar")
