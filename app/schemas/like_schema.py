from pydantic import BaseModel

class LikeStatus(BaseModel):
    """Like state of a post for the current user after like/unlike"""
    post_id: str
    liked: bool
    like_count: int
