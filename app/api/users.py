from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.schemas.common import ApiResponse, Page
from app.schemas.user_schema import UserUpdate, UserInDB, UserPublic
from app.schemas.post_schema import PostResponse
from app.services.user_service import UserService
from app.services.post_service import PostService
from app.services.auth_service import get_current_user, get_optional_user
from app.services.storage_service import get_storage
from app.db.session import get_db
from app.models.user import User
from app.utils.pagination import PageParams
from app.utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter()

@router.put("/me", response_model=ApiResponse[UserInDB])
async def update_profile(
    user_update: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage=Depends(get_storage),
):
    """Update the current user's username, bio or avatar"""
    user = await UserService(db, storage).update_profile(current_user, user_update)
    return success_response(UserInDB.model_validate(user), "Profile updated")

@router.get("/me/likes", response_model=ApiResponse[Page[PostResponse]])
async def get_liked_posts(
    params: PageParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Posts the current user has liked, most recent like first by default"""
    result = await PostService(db).list_liked_posts(
        current_user.id, params.page, params.limit, params.order
    )
    return success_response(result)

@router.get("/{user_id}", response_model=ApiResponse[UserPublic])
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Public profile of a user"""
    user = await UserService(db).get_user_or_404(user_id)
    return success_response(UserPublic.model_validate(user))

@router.get("/{user_id}/posts", response_model=ApiResponse[Page[PostResponse]])
async def get_user_posts(
    user_id: str,
    params: PageParams = Depends(),
    current_user=Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Posts written by a user"""
    await UserService(db).get_user_or_404(user_id)
    result = await PostService(db).list_posts(
        params.page,
        params.limit,
        params.sort,
        params.order,
        author_id=user_id,
        viewer_id=current_user.id if current_user else None,
    )
    return success_response(result)
