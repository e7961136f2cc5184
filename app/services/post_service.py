from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, or_
from sqlalchemy.orm import selectinload
import logging

from app.models.post import Post
from app.models.comment import Comment
from app.models.like import Like
from app.schemas.post_schema import PostCreate, PostUpdate, PostResponse
from app.services.like_service import LikeService
from app.utils.errors import NotFoundError
from app.utils.pagination import apply_sort, paginate

logger = logging.getLogger(__name__)

class PostService:
    def __init__(self, db: AsyncSession, storage=None):
        self.db = db
        self.storage = storage
        self.like_service = LikeService(db)

    def _normalize_images(self, images: List[str]) -> List[str]:
        """Store provider URLs as references so they can be re-signed later"""
        if self.storage is None:
            return list(images)
        return [self.storage.to_reference(image) for image in images]

    def _post_query(self):
        return select(Post).options(selectinload(Post.author)).execution_options(populate_existing=True)

    async def to_responses(self, posts, viewer_id: Optional[str] = None) -> List[PostResponse]:
        """Serialize posts, flagging the ones ``viewer_id`` has liked"""
        liked = set()
        if viewer_id:
            liked = await self.like_service.liked_post_ids(viewer_id, [post.id for post in posts])
        return [
            PostResponse.model_validate(post).model_copy(update={"is_liked": post.id in liked})
            for post in posts
        ]

    async def _page_of_responses(self, page: Dict[str, Any], viewer_id: Optional[str]) -> Dict[str, Any]:
        page["items"] = await self.to_responses(page["items"], viewer_id)
        return page

    async def create_post(self, author_id: str, post_data: PostCreate) -> Post:
        """Create a new post"""
        post = Post(
            author_id=author_id,
            title=post_data.title,
            content=post_data.content,
            images=self._normalize_images(post_data.images),
        )

        self.db.add(post)
        await self.db.commit()

        logger.info(f"Created post {post.id} by user {author_id}")
        return await self.get_post(post.id)

    async def get_post(self, post_id: str) -> Optional[Post]:
        """Get a post by ID, with its author"""
        result = await self.db.execute(self._post_query().where(Post.id == post_id))
        return result.scalar_one_or_none()

    async def get_post_or_404(self, post_id: str) -> Post:
        post = await self.get_post(post_id)
        if post is None:
            raise NotFoundError("Post not found")
        return post

    async def view_post(self, post_id: str, viewer_id: Optional[str] = None) -> PostResponse:
        """Post detail; counts one view without touching updated_at"""
        await self.get_post_or_404(post_id)

        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(views=Post.views + 1, updated_at=Post.updated_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        post = await self.get_post_or_404(post_id)
        return (await self.to_responses([post], viewer_id))[0]

    async def list_posts(
        self,
        page: int = 1,
        limit: int = 10,
        sort: str = "created_at",
        order: str = "desc",
        keyword: Optional[str] = None,
        author_id: Optional[str] = None,
        viewer_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """List posts, optionally filtered by a title/content keyword or author"""
        stmt = self._post_query()
        if keyword:
            pattern = f"%{keyword}%"
            stmt = stmt.where(or_(Post.title.ilike(pattern), Post.content.ilike(pattern)))
        if author_id:
            stmt = stmt.where(Post.author_id == author_id)

        stmt = apply_sort(stmt, Post, sort, order)
        return await self._page_of_responses(await paginate(self.db, stmt, page, limit), viewer_id)

    async def list_liked_posts(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        order: str = "desc",
    ) -> Dict[str, Any]:
        result = await self.like_service.list_liked_posts(user_id, page, limit, order)
        return await self._page_of_responses(result, user_id)

    async def update_post(self, post: Post, post_update: PostUpdate) -> Post:
        """Apply the fields present in ``post_update``"""
        update_data = post_update.model_dump(exclude_unset=True, exclude_none=True)
        if "images" in update_data:
            update_data["images"] = self._normalize_images(update_data["images"])

        for field, value in update_data.items():
            setattr(post, field, value)

        await self.db.commit()
        logger.info(f"Updated post {post.id}")
        return await self.get_post(post.id)

    async def delete_post(self, post_id: str) -> None:
        """Delete a post together with its comments and likes"""
        post = await self.get_post_or_404(post_id)

        try:
            # replies first, their parents are comments of the same post
            await self.db.execute(
                delete(Comment)
                .where(Comment.post_id == post_id, Comment.parent_id.is_not(None))
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Comment)
                .where(Comment.post_id == post_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Like)
                .where(Like.post_id == post_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Post)
                .where(Post.id == post_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        self.db.expunge(post)
        logger.info(f"Deleted post {post_id}")
