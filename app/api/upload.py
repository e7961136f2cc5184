from fastapi import APIRouter, Depends, Request, UploadFile, File
import logging

from app.config import settings
from app.schemas.common import ApiResponse
from app.schemas.upload_schema import UploadResponse
from app.services.auth_service import get_current_user
from app.services.storage_service import get_storage
from app.models.user import User
from app.utils.file_upload import validate_upload_file
from app.utils.rate_limit import limiter
from app.utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/", response_model=ApiResponse[UploadResponse], status_code=201)
@limiter.limit(settings.UPLOAD_RATE_LIMIT)
async def upload_file(
    request: Request,
    file: UploadFile = File(None),
    current_user: User = Depends(get_current_user),
    storage=Depends(get_storage),
):
    """
    Upload an image to the default storage backend.

    ``reference`` is what clients store in posts and profiles; ``url`` holds
    the same reference and is signed on the way out.
    """
    file = validate_upload_file(file)
    reference = await storage.upload(file.file, file.filename, file.content_type)

    logger.info(f"User {current_user.id} uploaded {file.filename} as {reference}")
    return success_response(
        UploadResponse(
            url=reference,
            reference=reference,
            filename=file.filename,
            mimetype=file.content_type,
        ),
        "File uploaded",
    )
