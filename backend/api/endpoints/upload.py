"""
File upload endpoints
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile

from core.config import settings
from models.upload import UploadResponse
from services.image_loader import UPLOAD_SCHEME
from services.storage import StorageService, storage_service
from utils.file_utils import get_mime_type
from utils.validators import validate_file_extension, validate_file_size, validate_image_content

logger = logging.getLogger(__name__)

router = APIRouter()


def get_storage() -> StorageService:
    return storage_service


@router.post("/single", response_model=UploadResponse)
async def upload_single_image(
    file: UploadFile = File(...),
    storage: StorageService = Depends(get_storage)
):
    """
    Upload a single image to use as a session source.

    - Validates file type, size and image content
    - Saves file to storage
    - Returns an ``upload:`` src for session creation
    """
    file_extension = validate_file_extension(file.filename, settings.ALLOWED_EXTENSIONS)

    contents = await file.read()
    validate_file_size(len(contents), settings.MAX_UPLOAD_SIZE)
    width, height = validate_image_content(contents)

    file_id, file_path = await storage.save_upload(contents, file.filename or f"image{file_extension}")
    logger.info(f"Stored upload {file_id} ({width}x{height}, {len(contents)} bytes)")

    return UploadResponse(
        file_id=file_id,
        filename=file.filename,
        size=len(contents),
        content_type=file.content_type or get_mime_type(file_extension),
        src=f"{UPLOAD_SCHEME}{file_id}",
        dimensions={"width": width, "height": height}
    )
