from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from sqlalchemy.orm import selectinload
import logging

from app.models.comment import Comment
from app.models.user import User
from app.models.post import Post
from app.utils.errors import NotFoundError, InvalidParentError, HasRepliesError
from app.utils.pagination import apply_sort, paginate

logger = logging.getLogger(__name__)

class CommentService:
    """
    Comments form a one-level tree under a post: top-level comments have no
    parent, replies point at a top-level comment of the same post and may
    address any user through ``reply_to_id``.

    No comment mutation may move the owning post's ``updated_at``. Each one
    reads the timestamp, mutates, and writes the same value back before the
    session commits, so readers never see the bumped value.

    Identity checks (author / post author / admin) belong to the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _comment_query(self):
        return select(Comment).options(
            selectinload(Comment.author),
            selectinload(Comment.reply_to),
        ).execution_options(populate_existing=True)

    @asynccontextmanager
    async def _preserve_post_updated_at(self, post_id: str):
        stmt = select(Post.updated_at).where(Post.id == post_id).with_for_update()
        original = (await self.db.execute(stmt)).scalar_one_or_none()
        if original is None:
            raise NotFoundError("Post not found", param="post_id")

        yield

        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(updated_at=original)
            .execution_options(synchronize_session=False)
        )

    async def _bump_comment_count(self, post_id: str, delta: int) -> None:
        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(comment_count=Post.comment_count + delta)
            .execution_options(synchronize_session=False)
        )

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        """Get a comment with its author and reply-to user"""
        result = await self.db.execute(self._comment_query().where(Comment.id == comment_id))
        return result.scalar_one_or_none()

    async def create_comment(
        self,
        post_id: str,
        author_id: str,
        content: str,
        parent_id: Optional[str] = None,
        reply_to_id: Optional[str] = None,
    ) -> Comment:
        """Create a top-level comment, or a reply when ``parent_id`` is given"""
        try:
            async with self._preserve_post_updated_at(post_id):
                if parent_id:
                    parent = await self.db.get(Comment, parent_id)
                    if parent is None:
                        raise NotFoundError("Parent comment not found", param="parent_id")
                    if parent.post_id != post_id:
                        raise InvalidParentError(param="parent_id")
                    # a reply to a reply joins the top-level thread
                    if parent.parent_id:
                        parent_id = parent.parent_id

                if reply_to_id:
                    if await self.db.get(User, reply_to_id) is None:
                        raise NotFoundError("Reply-to user not found", param="reply_to_id")

                comment = Comment(
                    post_id=post_id,
                    author_id=author_id,
                    content=content,
                    parent_id=parent_id,
                    reply_to_id=reply_to_id,
                )
                self.db.add(comment)
                await self.db.flush()
                await self._bump_comment_count(post_id, 1)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Created comment {comment.id} by user {author_id} on post {post_id}")
        return await self.get_comment(comment.id)

    async def update_comment(self, comment_id: str, content: str) -> Comment:
        """Update a comment's content"""
        comment = await self.db.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")

        try:
            async with self._preserve_post_updated_at(comment.post_id):
                comment.content = content
                comment.updated_at = datetime.utcnow()
                await self.db.flush()

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Updated comment {comment_id}")
        return await self.get_comment(comment_id)

    async def delete_comment(self, comment_id: str) -> None:
        """Delete a comment that has no replies"""
        comment = await self.db.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")

        post_id = comment.post_id
        try:
            async with self._preserve_post_updated_at(post_id):
                # under the post lock, which create_comment also takes
                reply = await self.db.scalar(
                    select(Comment.id).where(Comment.parent_id == comment_id).limit(1)
                )
                if reply is not None:
                    raise HasRepliesError()

                await self.db.execute(
                    delete(Comment)
                    .where(Comment.id == comment_id)
                    .execution_options(synchronize_session=False)
                )
                await self._bump_comment_count(post_id, -1)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        self.db.expunge(comment)
        logger.info(f"Deleted comment {comment_id} from post {post_id}")

    async def list_top_level_comments(
        self,
        post_id: str,
        page: int = 1,
        limit: int = 10,
        sort: str = "created_at",
        order: str = "desc",
    ) -> Dict[str, Any]:
        """Top-level comments of a post, each with all of its replies oldest first"""
        if await self.db.get(Post, post_id) is None:
            raise NotFoundError("Post not found")

        stmt = self._comment_query().options(
            selectinload(Comment.replies).selectinload(Comment.author),
            selectinload(Comment.replies).selectinload(Comment.reply_to),
        ).where(
            Comment.post_id == post_id,
            Comment.parent_id.is_(None),
        )
        stmt = apply_sort(stmt, Comment, sort, order)
        return await paginate(self.db, stmt, page, limit)

    async def list_replies(
        self,
        comment_id: str,
        page: int = 1,
        limit: int = 10,
        sort: str = "created_at",
        order: str = "asc",
    ) -> Dict[str, Any]:
        """Replies to one comment, paginated on their own"""
        if await self.db.get(Comment, comment_id) is None:
            raise NotFoundError("Comment not found")

        stmt = self._comment_query().where(Comment.parent_id == comment_id)
        stmt = apply_sort(stmt, Comment, sort, order)
        return await paginate(self.db, stmt, page, limit)

    async def list_user_comments(
        self,
        author_id: str,
        page: int = 1,
        limit: int = 10,
        sort: str = "created_at",
        order: str = "desc",
    ) -> Dict[str, Any]:
        stmt = self._comment_query().options(
            selectinload(Comment.post)
        ).where(Comment.author_id == author_id)
        stmt = apply_sort(stmt, Comment, sort, order)
        return await paginate(self.db, stmt, page, limit)
