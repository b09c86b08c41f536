"""
JSON error envelope and FastAPI exception handlers.
"""

import logging
from typing import Union
from datetime import datetime, timezone

from fastapi import Request
from fastapi.responses import JSONResponse

from utils.errors import (  # noqa: F401
    AppError, ValidationError, InvalidRatioError, InvalidPresetError,
    InvalidFocalPointError, ConfigurationError, ImageLoadError,
    ContainerNotFoundError, ExportError, PresetNotFoundError,
    SessionNotFoundError, SessionDestroyedError, SessionLimitError
)

logger = logging.getLogger(__name__)


def error_response(error: Union[AppError, Exception]) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        error: The error to convert to response

    Returns:
        JSONResponse with error details
    """
    if isinstance(error, AppError):
        content = {
            "error": {
                "code": error.code,
                "message": error.user_message,
                "details": error.details,
                "timestamp": error.timestamp
            }
        }
        status_code = error.status_code
    else:
        # Generic error handling
        content = {
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
        status_code = 500

        # Log the actual error
        logger.error(f"Unhandled error: {str(error)}", exc_info=error)

    return JSONResponse(
        status_code=status_code,
        content=content
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """FastAPI exception handler for AppError and its subclasses."""
    request_id = getattr(request.state, "request_id", "unknown")
    if exc.status_code >= 500:
        logger.error(f"[{request_id}] {exc.code}: {exc.message}")
    else:
        logger.warning(f"[{request_id}] {exc.code}: {exc.message}")
    return error_response(exc)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler of last resort."""
    return error_response(exc)
