"""
Validation utilities for uploaded source images and export parameters.
"""

import io
import math
from typing import List, Optional, Tuple
from PIL import Image, UnidentifiedImageError

from services.crop_exporter import EXPORT_FORMATS
from utils.errors import ValidationError
from utils.file_utils import get_file_extension

# Image dimension constraints
MIN_IMAGE_DIMENSION = 1  # pixels
MAX_IMAGE_DIMENSION = 20000  # pixels


def validate_file_size(file_size: int, max_size: int) -> bool:
    """
    Validate file size is within acceptable limits.

    Raises:
        ValidationError: If file size is invalid
    """
    if file_size == 0:
        raise ValidationError(
            "File is empty",
            code="FILE_EMPTY",
            details={"size": file_size}
        )

    if file_size > max_size:
        raise ValidationError(
            f"File too large. Maximum size is {max_size/(1024*1024):.1f}MB",
            code="FILE_TOO_LARGE",
            details={"size": file_size, "max_size": max_size}
        )

    return True


def validate_file_extension(filename: Optional[str], allowed: List[str]) -> str:
    """
    Validate and return file extension.

    Returns:
        Lowercase extension with dot

    Raises:
        ValidationError: If extension is not allowed
    """
    extension = get_file_extension(filename or "")

    if not extension:
        raise ValidationError(
            "File has no extension",
            code="NO_EXTENSION",
            details={"filename": filename}
        )

    if extension not in allowed:
        raise ValidationError(
            f"File type '{extension}' not allowed. Allowed types: {', '.join(allowed)}",
            code="INVALID_EXTENSION",
            details={"extension": extension, "allowed": list(allowed)}
        )

    return extension


def validate_image_content(content: bytes) -> Tuple[int, int]:
    """
    Check that bytes decode to an image of acceptable size.

    Returns:
        Tuple of (width, height)

    Raises:
        ValidationError: If the content is not an image or its size is out of range
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError):
        raise ValidationError(
            "File is not a valid image or is corrupted",
            code="INVALID_IMAGE"
        )

    if width < MIN_IMAGE_DIMENSION or height < MIN_IMAGE_DIMENSION:
        raise ValidationError(
            "Image has no pixels",
            code="IMAGE_TOO_SMALL",
            details={"width": width, "height": height}
        )

    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        raise ValidationError(
            f"Image too large. Maximum dimension is {MAX_IMAGE_DIMENSION}px",
            code="IMAGE_TOO_LARGE",
            details={"width": width, "height": height, "max": MAX_IMAGE_DIMENSION}
        )

    return width, height


def validate_export_settings(format: str, quality: Optional[float]) -> str:
    """
    Validate export format and quality.

    Returns:
        Normalized lowercase format

    Raises:
        ValidationError: If settings are invalid
    """
    format = (format or "").lower()
    if format not in EXPORT_FORMATS:
        raise ValidationError(
            f"Invalid export format: {format}",
            code="INVALID_FORMAT",
            details={"format": format, "allowed": ['png', 'jpeg', 'webp']}
        )

    if quality is not None and not (math.isfinite(quality) and 0 < quality <= 1):
        raise ValidationError(
            "Quality must be between 0 and 1",
            code="INVALID_QUALITY",
            details={"quality": str(quality)}
        )

    return format
