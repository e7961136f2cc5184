from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from app.schemas.common import ApiResponse
from app.schemas.user_schema import UserCreate, UserInDB
from app.schemas.auth_schema import Token
from app.services.auth_service import AuthService, get_current_user
from app.db.session import get_db
from app.models.user import User
from app.config import settings
from app.utils.errors import AuthenticationError
from app.utils.responses import success_response
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/register", response_model=ApiResponse[UserInDB], status_code=201)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Register a new user"""
    user = await AuthService(db).create_user(user_data)
    return success_response(UserInDB.model_validate(user), "User registered successfully")

@router.post("/login", response_model=ApiResponse[Token])
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """Login with username (or email) and password"""
    auth_service = AuthService(db)
    user = await auth_service.authenticate_user(form_data.username, form_data.password)

    if not user:
        logger.info(f"Failed login for {form_data.username}")
        raise AuthenticationError("Incorrect username or password", code="invalid_credentials")

    token = Token(
        access_token=auth_service.create_access_token(user),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserInDB.model_validate(user),
    )
    logger.info(f"User {user.id} logged in")
    return success_response(token, "Login successful")

@router.get("/me", response_model=ApiResponse[UserInDB])
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information"""
    return success_response(UserInDB.model_validate(current_user))

@router.post("/logout", response_model=ApiResponse[None])
async def logout(current_user: User = Depends(get_current_user)):
    """Logout; tokens are stateless, so the client just drops its token"""
    logger.info(f"User {current_user.id} logged out")
    return success_response(None, "Logout successful")
