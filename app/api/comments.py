from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from app.schemas.common import ApiResponse, Page
from app.schemas.comment_schema import CommentUpdate, CommentResponse, UserCommentResponse
from app.services.comment_service import CommentService
from app.services.auth_service import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.models.post import Post
from app.utils.errors import NotFoundError, PermissionDeniedError
from app.utils.pagination import PageParams
from app.utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/me", response_model=ApiResponse[Page[UserCommentResponse]])
async def get_my_comments(
    params: PageParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Comments written by the current user, with the post they belong to"""
    result = await CommentService(db).list_user_comments(
        current_user.id, params.page, params.limit, params.sort, params.order
    )
    result["items"] = [UserCommentResponse.model_validate(c) for c in result["items"]]
    return success_response(result)

@router.get("/{comment_id}/replies", response_model=ApiResponse[Page[CommentResponse]])
async def get_comment_replies(
    comment_id: str,
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """Replies to a comment"""
    result = await CommentService(db).list_replies(
        comment_id, params.page, params.limit, params.sort, params.order
    )
    result["items"] = [CommentResponse.model_validate(c) for c in result["items"]]
    return success_response(result)

@router.put("/{comment_id}", response_model=ApiResponse[CommentResponse])
async def update_comment(
    comment_id: str,
    comment_update: CommentUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Edit a comment (author or admin)"""
    comment_service = CommentService(db)
    comment = await comment_service.get_comment(comment_id)
    if not comment:
        raise NotFoundError("Comment not found")

    if comment.author_id != current_user.id and not current_user.is_admin:
        raise PermissionDeniedError("Not authorized to update this comment")

    comment = await comment_service.update_comment(comment_id, comment_update.content)
    return success_response(CommentResponse.model_validate(comment), "Comment updated")

@router.delete("/{comment_id}", response_model=ApiResponse[None])
async def delete_comment(
    comment_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete a comment (comment author, post author or admin)"""
    comment_service = CommentService(db)
    comment = await comment_service.get_comment(comment_id)
    if not comment:
        raise NotFoundError("Comment not found")

    post_author_id = await db.scalar(select(Post.author_id).where(Post.id == comment.post_id))
    if current_user.id not in (comment.author_id, post_author_id) and not current_user.is_admin:
        raise PermissionDeniedError("Not authorized to delete this comment")

    await comment_service.delete_comment(comment_id)
    return success_response(None, "Comment deleted")
