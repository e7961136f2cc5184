from pydantic import BaseModel, EmailStr, ConfigDict, Field
from typing import Optional
from datetime import datetime

from app.models.user import UserRole

class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr

class UserCreate(UserBase):
    password: str = Field(..., min_length=6, max_length=128)

class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    avatar: Optional[str] = None

class UserRoleUpdate(BaseModel):
    role: UserRole

class UserBrief(BaseModel):
    """Author info embedded in posts and comments"""
    model_config = ConfigDict(from_attributes=True)
    
    id: str
    username: str
    avatar: Optional[str] = None

class UserPublic(UserBrief):
    bio: Optional[str] = None
    created_at: datetime

class UserInDB(UserPublic):
    email: EmailStr
    role: UserRole
    is_active: bool
    updated_at: datetime
