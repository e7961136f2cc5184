"""
File upload utility functions
"""
import os
import logging
from typing import Optional
from fastapi import UploadFile
from app.config import settings
from app.utils.errors import InvalidRequestError

logger = logging.getLogger(__name__)


def get_upload_size(upload_file: UploadFile) -> int:
    """Size in bytes, measured from the spooled file when the client sent none"""
    if upload_file.size is not None:
        return upload_file.size

    stream = upload_file.file
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


def validate_upload_file(upload_file: Optional[UploadFile]) -> UploadFile:
    """
    Check an uploaded file against ALLOWED_MIME_TYPES and MAX_UPLOAD_SIZE.

    Raises:
        InvalidRequestError: missing file, disallowed type or oversized file
    """
    if upload_file is None or not upload_file.filename:
        raise InvalidRequestError(
            "No file provided",
            param="file",
            code="missing_required_field",
        )

    if upload_file.content_type not in settings.ALLOWED_MIME_TYPES:
        logger.info(f"Rejected upload {upload_file.filename} with type {upload_file.content_type}")
        raise InvalidRequestError(
            f"File type {upload_file.content_type} is not allowed",
            param="file",
            code="invalid_file_type",
        )

    size = get_upload_size(upload_file)
    if size > settings.MAX_UPLOAD_SIZE:
        raise InvalidRequestError(
            f"File exceeds the {settings.MAX_UPLOAD_SIZE // (1024 * 1024)} MB limit",
            param="file",
            code="file_too_large",
        )

    upload_file.file.seek(0)
    return upload_file
