from datetime import datetime
from typing import Any, Dict, Iterable, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, insert, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
import logging

from app.models.like import Like
from app.models.post import Post
from app.utils.errors import NotFoundError, ConflictError, NotLikedError
from app.utils.pagination import apply_sort, paginate

logger = logging.getLogger(__name__)

class LikeService:
    """
    One like per (user, post). The composite primary key is what rejects a
    second like, so concurrent requests cannot both succeed.

    ``Post.like_count`` follows every change, and like/unlike never move the
    post's ``updated_at``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _bump_like_count(self, post_id: str, delta: int) -> int:
        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(like_count=Post.like_count + delta, updated_at=Post.updated_at)
            .execution_options(synchronize_session=False)
        )
        return await self.db.scalar(select(Post.like_count).where(Post.id == post_id))

    async def like_post(self, user_id: str, post_id: str) -> int:
        """Like a post and return its new like count"""
        if await self.db.scalar(select(Post.id).where(Post.id == post_id)) is None:
            raise NotFoundError("Post not found")

        try:
            await self.db.execute(
                insert(Like).values(
                    user_id=user_id,
                    post_id=post_id,
                    created_at=datetime.utcnow(),
                )
            )
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Post already liked")

        try:
            like_count = await self._bump_like_count(post_id, 1)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"User {user_id} liked post {post_id}")
        return like_count

    async def unlike_post(self, user_id: str, post_id: str) -> int:
        """Remove a like and return the post's new like count"""
        if await self.db.scalar(select(Post.id).where(Post.id == post_id)) is None:
            raise NotFoundError("Post not found")

        try:
            result = await self.db.execute(
                delete(Like)
                .where(Like.user_id == user_id, Like.post_id == post_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotLikedError()

            like_count = await self._bump_like_count(post_id, -1)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"User {user_id} unliked post {post_id}")
        return like_count

    async def has_liked(self, user_id: str, post_id: str) -> bool:
        stmt = select(Like.post_id).where(Like.user_id == user_id, Like.post_id == post_id)
        return await self.db.scalar(stmt) is not None

    async def liked_post_ids(self, user_id: str, post_ids: Iterable[str]) -> Set[str]:
        """Which of ``post_ids`` the user has liked"""
        post_ids = list(post_ids)
        if not post_ids:
            return set()
        stmt = select(Like.post_id).where(Like.user_id == user_id, Like.post_id.in_(post_ids))
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def list_liked_posts(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        order: str = "desc",
    ) -> Dict[str, Any]:
        """Posts the user liked, ordered by when the like happened"""
        stmt = (
            select(Post)
            .join(Like, Like.post_id == Post.id)
            .where(Like.user_id == user_id)
            .options(selectinload(Post.author))
        )
        stmt = apply_sort(stmt, Like, "created_at", order)
        return await paginate(self.db, stmt, page, limit)
