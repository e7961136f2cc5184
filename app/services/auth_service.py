from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.config import settings
from app.schemas.auth_schema import TokenData
from app.schemas.user_schema import UserCreate
from app.models.user import User, UserRole
from app.db.session import get_db
from app.utils.errors import AuthenticationError, ConflictError, PermissionDeniedError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha512"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash"""
        return pwd_context.verify(plain_password, hashed_password)

    def get_password_hash(self, password: str) -> str:
        """Hash a password"""
        return pwd_context.hash(password)

    async def create_user(self, user_data: UserCreate, role: UserRole = UserRole.USER) -> User:
        """Create a new user, rejecting taken usernames and emails"""
        existing = await self.db.scalar(select(User.id).where(User.username == user_data.username))
        if existing:
            raise ConflictError("Username already in use", param="username")

        existing = await self.db.scalar(select(User.id).where(User.email == user_data.email))
        if existing:
            raise ConflictError("Email already in use", param="email")

        user = User(
            username=user_data.username,
            email=user_data.email,
            hashed_password=self.get_password_hash(user_data.password),
            role=role,
            is_active=True,
        )

        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Registered user {user.id} ({user.username})")
        return user

    async def authenticate_user(self, username: str, password: str) -> Optional[User]:
        """Authenticate by username or email"""
        stmt = select(User).where(
            (User.username == username) | (User.email == username)
        )
        result = await self.db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not self.verify_password(password, user.hashed_password):
            return None

        if not user.is_active:
            raise PermissionDeniedError("Inactive user")

        return user

    def create_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token carrying id, username, email and role"""
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        to_encode = {
            "sub": user.id,
            "username": user.username,
            "email": user.email,
            "role": user.role.value,
            "exp": datetime.utcnow() + expires_delta,
            "type": "access",
        }
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    def verify_token(self, token: str) -> Optional[TokenData]:
        """Verify a JWT token"""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            return None

        if payload.get("type") != "access" or payload.get("sub") is None:
            return None

        try:
            return TokenData(
                user_id=payload["sub"],
                username=payload.get("username", ""),
                email=payload.get("email", ""),
                role=payload.get("role", UserRole.USER.value),
            )
        except ValueError:
            return None

async def _load_user(token: str, db: AsyncSession) -> User:
    token_data = AuthService(db).verify_token(token)
    if token_data is None:
        raise AuthenticationError()

    user = await db.get(User, token_data.user_id)
    if user is None:
        raise AuthenticationError()

    if not user.is_active:
        raise PermissionDeniedError("Inactive user")

    return user

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Dependency to get current authenticated user"""
    return await _load_user(token, db)

async def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Like get_current_user, but anonymous requests get None"""
    if not token:
        return None
    return await _load_user(token, db)

async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise PermissionDeniedError("Administrator privileges required")
    return current_user
