"""
Crop export: renders crop rectangles of a loaded image to encoded files.
"""

import asyncio
import io
import logging
import zipfile
from typing import Iterable, List, Optional, Tuple

from PIL import Image

from services.crop_calculator import CropRect, CropSet, validate_crop_bounds
from services.presets import ResolvedPreset
from utils.errors import ExportError
from utils.file_utils import sanitize_filename

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    'png': ('PNG', 'image/png', 'png'),
    'jpeg': ('JPEG', 'image/jpeg', 'jpg'),
    'jpg': ('JPEG', 'image/jpeg', 'jpg'),
    'webp': ('WEBP', 'image/webp', 'webp'),
}

DEFAULT_QUALITY = 0.92


def _format_info(format: str) -> Tuple[str, str, str]:
    info = EXPORT_FORMATS.get(format.lower())
    if info is None:
        raise ExportError(
            f"Unsupported format: {format}",
            details={"format": format, "allowed": sorted(EXPORT_FORMATS)}
        )
    return info


def media_type(format: str) -> str:
    """MIME type of an export format"""
    return _format_info(format)[1]


def file_extension(format: str) -> str:
    """File extension (without dot) of an export format"""
    return _format_info(format)[2]


def render_crop(
    image: Image.Image,
    crop: CropRect,
    format: str = 'png',
    quality: Optional[float] = DEFAULT_QUALITY
) -> bytes:
    """
    Cut a crop out of an image and encode it.

    Args:
        image: Decoded source image
        crop: Crop rect in image pixels
        format: png, jpeg or webp
        quality: 0-1 for JPEG/WebP, ignored for PNG

    Returns:
        Encoded image bytes

    Raises:
        ExportError: If the format is unknown or encoding fails
    """
    pil_format = _format_info(format)[0]
    width, height = image.size

    # Rounding may overshoot the edge by one pixel
    if not validate_crop_bounds(crop, width, height)[0]:
        crop = crop.adjust_to_bounds(width, height)
    is_valid, error = validate_crop_bounds(crop, width, height)
    if not is_valid:
        raise ExportError(error, details={"crop": crop.to_dict()})

    try:
        region = image.crop(crop.box)
        output = io.BytesIO()

        if pil_format == 'PNG':
            region.save(output, format='PNG')
        else:
            if pil_format == 'JPEG' and region.mode in ('RGBA', 'LA', 'P'):
                # Flatten transparency onto white for JPEG
                region = region.convert('RGBA')
                background = Image.new('RGB', region.size, (255, 255, 255))
                background.paste(region, mask=region.split()[3])
                region = background
            elif pil_format == 'JPEG' and region.mode != 'RGB':
                region = region.convert('RGB')
            q = DEFAULT_QUALITY if quality is None else quality
            region.save(output, format=pil_format, quality=int(round(q * 100)))

        return output.getvalue()
    except (OSError, ValueError) as e:
        raise ExportError(
            f"Failed to encode crop as {format}: {e}",
            details={"crop": crop.to_dict(), "format": format}
        )


async def export_all(
    image: Image.Image,
    crops: CropSet,
    presets: Iterable[ResolvedPreset],
    format: str = 'png',
    quality: Optional[float] = DEFAULT_QUALITY
) -> List[Tuple[str, bytes]]:
    """
    Encode every preset's crop concurrently.

    Returns:
        (preset name, bytes) pairs in registry order
    """
    names = [preset.name for preset in presets if preset.name in crops]
    encoded = await asyncio.gather(*(
        asyncio.to_thread(render_crop, image, crops[name], format, quality)
        for name in names
    ))
    return list(zip(names, encoded))


def export_filenames(names: Iterable[str], format: str = 'png') -> List[str]:
    """
    File names for a batch of crops, in preset order.

    Each name is reduced to a single safe path component. A name that
    collides with an earlier one (case-insensitively) gets its position
    in the batch appended, so every crop keeps its own file.
    """
    extension = file_extension(format)
    taken = set()
    filenames = []
    for index, name in enumerate(names):
        stem = sanitize_filename(name).strip('.') or 'crop'
        filename = f"{stem}.{extension}"
        suffix = index
        while filename.lower() in taken:
            filename = f"{stem}-{suffix}.{extension}"
            suffix += 1
        taken.add(filename.lower())
        filenames.append(filename)
    return filenames


def build_zip(exports: List[Tuple[str, bytes]], format: str = 'png') -> bytes:
    """Package exported crops into a ZIP archive, one entry per preset."""
    filenames = export_filenames([name for name, _ in exports], format)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
        for filename, (_, content) in zip(filenames, exports):
            archive.writestr(filename, content)
    logger.debug(f"Packaged {len(exports)} crops into ZIP")
    return buffer.getvalue()
