import enum

from sqlalchemy import Column, String, Boolean, Text, Enum, Index
from sqlalchemy.orm import relationship
from app.db.base import BaseModel

class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"

class User(BaseModel):
    __tablename__ = "users"
    
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    avatar = Column(String(512))  # storage reference or external URL
    bio = Column(Text)
    role = Column(Enum(UserRole, name="user_role"), default=UserRole.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    posts = relationship("Post", back_populates="author", passive_deletes=True)
    comments = relationship(
        "Comment",
        back_populates="author",
        foreign_keys="Comment.author_id",
        passive_deletes=True
    )
    likes = relationship("Like", back_populates="user", passive_deletes=True)
    
    __table_args__ = (
        Index('ix_users_created_at', 'created_at'),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
