from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from app.schemas.user_schema import UserBrief

class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    parent_id: Optional[str] = None
    reply_to_id: Optional[str] = None

class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)

class CommentPostInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    id: str
    title: str

class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    id: str
    content: str
    post_id: str
    author_id: str
    parent_id: Optional[str] = None
    reply_to_id: Optional[str] = None
    author: UserBrief
    reply_to: Optional[UserBrief] = None
    created_at: datetime
    updated_at: datetime

class CommentWithReplies(CommentResponse):
    """Top-level comment with its whole (single-level) reply list"""
    replies: List[CommentResponse] = []

class UserCommentResponse(CommentResponse):
    post: CommentPostInfo
