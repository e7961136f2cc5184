from sqlalchemy import Column, String, Text, Integer, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from app.db.base import BaseModel

class Post(BaseModel):
    __tablename__ = "posts"
    
    author_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    images = Column(JSON, default=list, nullable=False)  # ordered storage references
    views = Column(Integer, default=0, nullable=False)
    
    # Relationships
    author = relationship("User", back_populates="posts")
    comments = relationship("Comment", back_populates="post", passive_deletes=True)
    likes = relationship("Like", back_populates="post", passive_deletes=True)
    
    # Denormalized counts; writers must keep updated_at untouched
    like_count = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)
    
    # Indexes for better performance
    __table_args__ = (
        Index('ix_posts_author_id', 'author_id'),
        Index('ix_posts_created_at', 'created_at'),
        Index('ix_posts_updated_at', 'updated_at'),
    )
