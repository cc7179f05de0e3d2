"""Tests for User service lookups."""
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.users.models import User
from src.domains.users.service import UserService


class TestGetUserById:
    """Tests for get_user_by_id method."""

    async def test_get_existing_user(self, db_session: AsyncSession, coach: User):
        """Should return user when found."""
        service = UserService(db_session)

        user = await service.get_user_by_id(coach.id)

        assert user is not None
        assert user.email == coach.email
        assert user.full_name == "Carla Mendes"

    async def test_get_nonexistent_user(self, db_session: AsyncSession):
        """Should return None for nonexistent user."""
        service = UserService(db_session)

        assert await service.get_user_by_id(uuid.uuid4()) is None


class TestListAdminIds:
    async def test_only_active_admins(
        self, db_session: AsyncSession, admin: User, coach: User, parent: User,
    ):
        """Coaches, parents and deactivated admins are excluded."""
        inactive = User(
            email="retired.admin@example.com",
            first_name="Retired",
            last_name="Admin",
            role=admin.role,
            is_active=False,
        )
        db_session.add(inactive)
        await db_session.commit()

        admin_ids = await UserService(db_session).list_admin_ids()

        assert admin_ids == [admin.id]


class TestLockUser:
    async def test_lock_returns_user(self, db_session: AsyncSession, coach: User):
        user = await UserService(db_session).lock_user(coach.id)

        assert user is not None
        assert user.id == coach.id

    async def test_lock_missing_user(self, db_session: AsyncSession):
        assert await UserService(db_session).lock_user(uuid.uuid4()) is None
