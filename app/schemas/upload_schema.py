from pydantic import BaseModel

class UploadResponse(BaseModel):
    url: str  # signed on the way out by the file URL middleware
    reference: str  # what clients store in posts and profiles
    filename: str
    mimetype: str
