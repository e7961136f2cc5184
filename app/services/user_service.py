"""
User Service for handling user-related business logic
"""
import logging
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from app.models.user import User, UserRole
from app.schemas.user_schema import UserUpdate
from app.utils.errors import NotFoundError, ConflictError, InvalidRequestError
from app.utils.pagination import apply_sort, paginate

logger = logging.getLogger(__name__)

class UserService:
    def __init__(self, db: AsyncSession, storage=None):
        self.db = db
        self.storage = storage

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_user_or_404(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_user_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def update_profile(self, user: User, user_update: UserUpdate) -> User:
        """Update username, bio or avatar of ``user``"""
        update_data = user_update.model_dump(exclude_unset=True)

        username = update_data.get("username")
        if username and username != user.username:
            if await self.get_user_by_username(username) is not None:
                raise ConflictError("Username already in use", param="username")

        if update_data.get("avatar") and self.storage is not None:
            update_data["avatar"] = self.storage.to_reference(update_data["avatar"])

        for field, value in update_data.items():
            if field == "username" and value is None:
                continue
            setattr(user, field, value)

        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Updated profile of user {user.id}")
        return user

    async def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        sort: str = "created_at",
        order: str = "desc",
        keyword: Optional[str] = None,
    ) -> Dict[str, Any]:
        stmt = select(User)
        if keyword:
            pattern = f"%{keyword}%"
            stmt = stmt.where(or_(User.username.ilike(pattern), User.email.ilike(pattern)))
        stmt = apply_sort(stmt, User, sort, order)
        return await paginate(self.db, stmt, page, limit)

    async def set_role(self, user_id: str, role: UserRole, acting_admin: User) -> User:
        """Change a user's role; admins cannot demote themselves"""
        user = await self.get_user_or_404(user_id)
        if user.id == acting_admin.id and role != UserRole.ADMIN:
            raise InvalidRequestError("Administrators cannot demote themselves", param="role")

        user.role = role
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Admin {acting_admin.id} set role of user {user_id} to {role.value}")
        return user
