from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app.schemas.common import ApiResponse, Page
from app.schemas.post_schema import PostResponse
from app.schemas.user_schema import UserInDB, UserRoleUpdate
from app.services.post_service import PostService
from app.services.user_service import UserService
from app.services.auth_service import get_current_admin
from app.db.session import get_db
from app.models.user import User
from app.utils.pagination import PageParams
from app.utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/posts", response_model=ApiResponse[Page[PostResponse]])
async def list_all_posts(
    params: PageParams = Depends(),
    keyword: Optional[str] = Query(None, max_length=100),
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await PostService(db).list_posts(
        params.page, params.limit, params.sort, params.order, keyword=keyword
    )
    return success_response(result)

@router.delete("/posts/{post_id}", response_model=ApiResponse[None])
async def delete_any_post(
    post_id: str,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    await PostService(db).delete_post(post_id)
    logger.info(f"Admin {admin.id} deleted post {post_id}")
    return success_response(None, "Post deleted")

@router.get("/users", response_model=ApiResponse[Page[UserInDB]])
async def list_users(
    params: PageParams = Depends(),
    keyword: Optional[str] = Query(None, max_length=100),
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await UserService(db).list_users(
        params.page, params.limit, params.sort, params.order, keyword=keyword
    )
    result["items"] = [UserInDB.model_validate(u) for u in result["items"]]
    return success_response(result)

@router.put("/users/{user_id}/role", response_model=ApiResponse[UserInDB])
async def change_user_role(
    user_id: str,
    role_update: UserRoleUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Promote or demote a user"""
    user = await UserService(db).set_role(user_id, role_update.role, admin)
    return success_response(UserInDB.model_validate(user), "Role updated")
