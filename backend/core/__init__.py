"""
Core module for the FocalCrop backend
"""

from .config import settings
from .middleware import RequestIDMiddleware, LoggingMiddleware, resolve_request_id

__all__ = ["settings", "RequestIDMiddleware", "LoggingMiddleware", "resolve_request_id"]
