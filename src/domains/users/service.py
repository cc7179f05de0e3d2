"""User lookups used by the scheduling core."""
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.users.models import User, UserRole


class UserService:
    """Service for handling user operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_id(self, user_id: uuid.UUID) -> User | None:
        """Get a user by ID.

        Args:
            user_id: The user's UUID

        Returns:
            The User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_admin_ids(self) -> list[uuid.UUID]:
        """IDs of all active admins."""
        result = await self.db.execute(
            select(User.id).where(
                User.role == UserRole.ADMIN,
                User.is_active == True,  # noqa: E712
            )
        )
        return list(result.scalars().all())

    async def lock_user(self, user_id: uuid.UUID) -> User | None:
        """Load a user row with ``SELECT ... FOR UPDATE``.

        Scheduling writes for a coach serialise on the coach's row. SQLite
        ignores the lock clause.
        """
        result = await self.db.execute(
            select(User).where(User.id == user_id).with_for_update()
        )
        return result.scalar_one_or_none()
