from pydantic import BaseModel
from typing import Optional

from app.models.user import UserRole
from app.schemas.user_schema import UserInDB

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Optional[UserInDB] = None

class TokenData(BaseModel):
    """Identity carried in the JWT and attached to each request"""
    user_id: str
    username: str
    email: str
    role: UserRole
