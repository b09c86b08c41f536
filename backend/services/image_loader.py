"""
Image source loading.

Resolves a session ``src`` to bytes, decodes it with Pillow in a worker
thread and reports its natural dimensions. Supported sources:

- ``data:`` URIs (base64 or percent-encoded)
- ``upload:<file_id>`` for files stored through the upload endpoint
- ``file://`` URLs and plain filesystem paths

Remote ``http(s)`` sources are refused.
"""

import asyncio
import base64
import binascii
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, unquote_to_bytes, urlparse

import aiofiles
from PIL import Image, UnidentifiedImageError

from services.storage import StorageService, storage_service
from utils.errors import ImageLoadError

logger = logging.getLogger(__name__)

UPLOAD_SCHEME = "upload:"
DATA_SCHEME = "data:"
FILE_SCHEME = "file://"
REMOTE_SCHEMES = ("http://", "https://", "ftp://")


@dataclass
class LoadedImage:
    """A decoded source image and its natural size."""
    src: str
    width: int
    height: int
    image: Image.Image

    def close(self) -> None:
        self.image.close()


def decode_data_uri(src: str) -> bytes:
    """Return the payload of a ``data:`` URI."""
    header, sep, data = src[len(DATA_SCHEME):].partition(",")
    if not sep:
        raise ImageLoadError("Malformed data URI: missing ','")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageLoadError(f"Malformed base64 data URI: {e}")
    return unquote_to_bytes(data)


def decode_image(content: bytes, src: str) -> LoadedImage:
    """
    Decode image bytes fully so later crops never touch the source again.

    Raises:
        ImageLoadError: If the bytes are not a decodable image
    """
    try:
        image = Image.open(io.BytesIO(content))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageLoadError(
            f"Failed to load image: {src}",
            details={"reason": str(e)}
        )

    width, height = image.size
    if width <= 0 or height <= 0:
        image.close()
        raise ImageLoadError(f"Image has no pixels: {src}")

    return LoadedImage(src=src, width=width, height=height, image=image)


class ImageLoaderService:
    """Loads session image sources"""

    def __init__(self, storage: Optional[StorageService] = None, timeout: Optional[float] = None):
        self.storage = storage or storage_service
        self.timeout = timeout

    async def read_source(self, src: str) -> bytes:
        """Fetch the raw bytes behind a source string"""
        if src.startswith(DATA_SCHEME):
            return decode_data_uri(src)

        if src.startswith(UPLOAD_SCHEME):
            file_id = src[len(UPLOAD_SCHEME):]
            content = await self.storage.get_upload(file_id)
            if content is None:
                raise ImageLoadError(
                    f"Failed to load image: upload {file_id} not found",
                    details={"file_id": file_id}
                )
            return content

        if src.startswith(REMOTE_SCHEMES):
            raise ImageLoadError(
                f"Failed to load image: remote sources are not supported ({src})",
                details={"scheme": urlparse(src).scheme}
            )

        path = Path(unquote(urlparse(src).path)) if src.startswith(FILE_SCHEME) else Path(src)
        try:
            async with aiofiles.open(path, 'rb') as f:
                return await f.read()
        except OSError as e:
            raise ImageLoadError(
                f"Failed to load image: {src}",
                details={"reason": str(e)}
            )

    async def load(self, src: str) -> LoadedImage:
        """
        Load and decode an image source.

        Raises:
            ImageLoadError: On any read, decode or timeout failure
        """
        try:
            return await asyncio.wait_for(self._load(src), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ImageLoadError(
                f"Failed to load image: timed out after {self.timeout}s",
                details={"timeout": self.timeout}
            )

    async def _load(self, src: str) -> LoadedImage:
        content = await self.read_source(src)
        loaded = await asyncio.to_thread(decode_image, content, src)
        logger.debug(f"Loaded {src[:64]} ({loaded.width}x{loaded.height})")
        return loaded
