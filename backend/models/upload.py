"""
Upload-related Pydantic models
"""

from pydantic import BaseModel
from typing import Optional


class UploadResponse(BaseModel):
    """Response model for single file upload"""
    file_id: str
    filename: str
    size: int
    content_type: str
    src: str  # pass as a session src
    dimensions: Optional[dict[str, int]] = None
