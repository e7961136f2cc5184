from sqlalchemy import Column, String, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.db.base import BaseModel

class Comment(BaseModel):
    __tablename__ = "comments"
    
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    parent_id = Column(String(36), ForeignKey("comments.id"), nullable=True)
    reply_to_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    
    # Relationships
    post = relationship("Post", back_populates="comments")
    author = relationship("User", back_populates="comments", foreign_keys=[author_id])
    reply_to = relationship("User", foreign_keys=[reply_to_id])
    parent = relationship(
        "Comment", 
        remote_side="Comment.id",
        back_populates="replies",
        foreign_keys=[parent_id]
    )
    # Replies always read oldest first
    replies = relationship(
        "Comment",
        back_populates="parent",
        foreign_keys=[parent_id],
        order_by="Comment.created_at",
        passive_deletes=True
    )
    
    # Indexes for better performance
    __table_args__ = (
        Index('ix_comments_post_id', 'post_id'),
        Index('ix_comments_author_id', 'author_id'),
        Index('ix_comments_parent_id', 'parent_id'),
        Index('ix_comments_created_at', 'created_at'),
    )
