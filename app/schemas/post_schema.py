from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from app.schemas.user_schema import UserBrief

class PostBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list, max_length=9)

class PostCreate(PostBase):
    pass

class PostUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = Field(None, max_length=9)

class PostResponse(PostBase):
    model_config = ConfigDict(from_attributes=True)
    
    id: str
    author_id: str
    author: Optional[UserBrief] = None
    views: int = 0
    like_count: int = 0
    comment_count: int = 0
    is_liked: bool = False
    created_at: datetime
    updated_at: datetime
