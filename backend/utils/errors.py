"""
Error types shared by the crop engine and the API.

This module has no web framework dependency; the HTTP envelope lives in
utils.error_handlers.
"""

from typing import Dict, Optional
from datetime import datetime, timezone


class AppError(Exception):
    """Base application error class."""

    def __init__(
        self,
        message: str,
        code: str = "APP_ERROR",
        status_code: int = 500,
        details: Optional[Dict] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.user_message = user_message or message
        self.timestamp = datetime.now(timezone.utc).isoformat()


class ValidationError(AppError):
    """Input validation error."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", **kwargs):
        super().__init__(
            message,
            code=code,
            status_code=400,
            **kwargs
        )


class InvalidRatioError(ValidationError):
    """A ratio specification could not be turned into a positive finite number."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="INVALID_RATIO", **kwargs)


class InvalidPresetError(ValidationError):
    """A crop preset is missing its name or carries an unusable ratio."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="INVALID_PRESET", **kwargs)


class InvalidFocalPointError(ValidationError):
    """Focal point coordinates are not numbers."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="INVALID_FOCAL_POINT", **kwargs)


class ConfigurationError(ValidationError):
    """Session configuration holds an unknown value."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="CONFIGURATION_ERROR", **kwargs)


class ImageLoadError(AppError):
    """The image source could not be read or decoded."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            code="IMAGE_LOAD_FAILED",
            status_code=422,
            **kwargs
        )


class ContainerNotFoundError(AppError):
    """The export container for a session does not exist."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            code="CONTAINER_NOT_FOUND",
            status_code=500,
            **kwargs
        )


class ExportError(AppError):
    """Rendering a crop to an encoded image failed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            code="EXPORT_FAILED",
            status_code=422,
            **kwargs
        )


class PresetNotFoundError(AppError):
    """No preset with the requested name is registered."""

    def __init__(self, name: str, **kwargs):
        super().__init__(
            f"Preset '{name}' not found",
            code="PRESET_NOT_FOUND",
            status_code=404,
            details={"name": name},
            **kwargs
        )


class SessionNotFoundError(AppError):
    """No live session with the requested id."""

    def __init__(self, session_id: str, **kwargs):
        super().__init__(
            f"Session {session_id} not found",
            code="SESSION_NOT_FOUND",
            status_code=404,
            details={"session_id": session_id},
            **kwargs
        )


class SessionDestroyedError(AppError):
    """The session was destroyed and accepts no further operations."""

    def __init__(self, message: str = "Session has been destroyed", **kwargs):
        super().__init__(
            message,
            code="SESSION_DESTROYED",
            status_code=410,
            **kwargs
        )


class SessionLimitError(AppError):
    """Too many live sessions."""

    def __init__(self, message: str = "Session limit reached", **kwargs):
        super().__init__(
            message,
            code="SESSION_LIMIT",
            status_code=429,
            **kwargs
        )
