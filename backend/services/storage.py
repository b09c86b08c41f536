"""
File storage service for uploaded source images and exported crops
"""

import aiofiles
from pathlib import Path
from typing import Optional, Union

from core.config import settings
from utils.file_utils import ensure_directory, generate_file_hash, sanitize_filename


class StorageService:
    """Service for handling file storage operations"""

    def __init__(
        self,
        upload_dir: Union[str, Path, None] = None,
        output_dir: Union[str, Path, None] = None
    ):
        self.upload_dir = Path(upload_dir) if upload_dir else settings.upload_path
        self.output_dir = Path(output_dir) if output_dir else settings.output_path

    async def save_upload(self, content: bytes, filename: str) -> tuple[str, str]:
        """
        Save uploaded file to storage
        Returns: (file_id, file_path)
        """
        ensure_directory(self.upload_dir)

        # Content hash doubles as the file id
        file_id = generate_file_hash(content)

        # Sanitize filename
        safe_filename = sanitize_filename(filename)

        # Create file path
        file_path = self.upload_dir / f"{file_id}_{safe_filename}"

        # Save file
        async with aiofiles.open(file_path, 'wb') as f:
            await f.write(content)

        return file_id, str(file_path)

    def find_upload(self, file_id: str) -> Optional[Path]:
        """Locate a stored upload by id"""
        # Ids are hex digests; anything else could escape the upload dir
        if not file_id or not all(c in "0123456789abcdef" for c in file_id):
            return None
        if not self.upload_dir.exists():
            return None
        for file_path in self.upload_dir.glob(f"{file_id}_*"):
            return file_path
        return None

    async def get_upload(self, file_id: str) -> Optional[bytes]:
        """Get uploaded file content by ID"""
        file_path = self.find_upload(file_id)
        if file_path is None:
            return None
        async with aiofiles.open(file_path, 'rb') as f:
            return await f.read()

    def session_dir(self, session_id: str) -> Path:
        """Create and return the export container of a session"""
        return ensure_directory(self.output_dir / sanitize_filename(session_id))


# Singleton instance
storage_service = StorageService()
