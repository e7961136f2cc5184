from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app.schemas.common import ApiResponse, Page
from app.schemas.post_schema import PostCreate, PostUpdate, PostResponse
from app.schemas.comment_schema import CommentCreate, CommentResponse, CommentWithReplies
from app.schemas.like_schema import LikeStatus
from app.services.post_service import PostService
from app.services.like_service import LikeService
from app.services.comment_service import CommentService
from app.services.auth_service import get_current_user, get_optional_user
from app.services.storage_service import get_storage
from app.db.session import get_db
from app.models.user import User
from app.utils.errors import PermissionDeniedError
from app.utils.pagination import PageParams
from app.utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/", response_model=ApiResponse[Page[PostResponse]])
async def list_posts(
    params: PageParams = Depends(),
    keyword: Optional[str] = Query(None, max_length=100),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """List posts, newest first by default"""
    result = await PostService(db).list_posts(
        params.page,
        params.limit,
        params.sort,
        params.order,
        keyword=keyword,
        viewer_id=current_user.id if current_user else None,
    )
    return success_response(result)

@router.post("/", response_model=ApiResponse[PostResponse], status_code=201)
async def create_post(
    post_data: PostCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage=Depends(get_storage),
):
    """Create a new post"""
    post_service = PostService(db, storage)
    post = await post_service.create_post(current_user.id, post_data)
    return success_response((await post_service.to_responses([post]))[0], "Post created")

@router.get("/{post_id}", response_model=ApiResponse[PostResponse])
async def get_post(
    post_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a post; every read counts as a view"""
    post = await PostService(db).view_post(post_id, current_user.id if current_user else None)
    return success_response(post)

@router.put("/{post_id}", response_model=ApiResponse[PostResponse])
async def update_post(
    post_id: str,
    post_update: PostUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage=Depends(get_storage),
):
    """Update a post (author or admin)"""
    post_service = PostService(db, storage)
    post = await post_service.get_post_or_404(post_id)

    if post.author_id != current_user.id and not current_user.is_admin:
        raise PermissionDeniedError("Not authorized to update this post")

    post = await post_service.update_post(post, post_update)
    responses = await post_service.to_responses([post], current_user.id)
    return success_response(responses[0], "Post updated")

@router.delete("/{post_id}", response_model=ApiResponse[None])
async def delete_post(
    post_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete a post (author or admin)"""
    post_service = PostService(db)
    post = await post_service.get_post_or_404(post_id)

    if post.author_id != current_user.id and not current_user.is_admin:
        raise PermissionDeniedError("Not authorized to delete this post")

    await post_service.delete_post(post_id)
    return success_response(None, "Post deleted")

@router.post("/{post_id}/like", response_model=ApiResponse[LikeStatus])
async def like_post(
    post_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Like a post"""
    like_count = await LikeService(db).like_post(current_user.id, post_id)
    return success_response(
        LikeStatus(post_id=post_id, liked=True, like_count=like_count),
        "Post liked",
    )

@router.delete("/{post_id}/like", response_model=ApiResponse[LikeStatus])
async def unlike_post(
    post_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Remove the current user's like"""
    like_count = await LikeService(db).unlike_post(current_user.id, post_id)
    return success_response(
        LikeStatus(post_id=post_id, liked=False, like_count=like_count),
        "Post unliked",
    )

@router.get("/{post_id}/comments", response_model=ApiResponse[Page[CommentWithReplies]])
async def list_post_comments(
    post_id: str,
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """Top-level comments of a post, each carrying its replies"""
    result = await CommentService(db).list_top_level_comments(
        post_id, params.page, params.limit, params.sort, params.order
    )
    result["items"] = [CommentWithReplies.model_validate(c) for c in result["items"]]
    return success_response(result)

@router.post("/{post_id}/comments", response_model=ApiResponse[CommentResponse], status_code=201)
async def create_comment(
    post_id: str,
    comment_data: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Comment on a post, or reply to a comment with ``parent_id``"""
    comment = await CommentService(db).create_comment(
        post_id=post_id,
        author_id=current_user.id,
        content=comment_data.content,
        parent_id=comment_data.parent_id,
        reply_to_id=comment_data.reply_to_id,
    )
    return success_response(CommentResponse.model_validate(comment), "Comment created")
