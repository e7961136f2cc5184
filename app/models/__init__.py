"""
Models package for Forum API
"""
from app.db.base import Base, BaseModel
from app.models.user import User, UserRole
from app.models.post import Post
from app.models.comment import Comment
from app.models.like import Like

__all__ = [
    'Base',
    'BaseModel',
    'User',
    'UserRole',
    'Post',
    'Comment',
    'Like',
]
