"""
Crop calculation for focal-point framing.
Fits the largest rectangle of a target ratio into the image, centers it on
the focal point and pulls it back inside the image bounds.
"""

import math
from typing import Tuple, Dict, Optional, Iterable
from dataclasses import dataclass

from services.presets import ResolvedPreset


@dataclass(frozen=True)
class CropRect:
    """Represents a calculated crop region in image pixels."""
    x: int  # Left edge
    y: int  # Top edge
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """(left, upper, right, lower) as used by PIL.Image.crop."""
        return (self.x, self.y, self.right, self.bottom)

    def validate_bounds(self, image_width: int, image_height: int) -> bool:
        """Check if crop rect is within image bounds."""
        return (
            self.x >= 0 and
            self.y >= 0 and
            self.right <= image_width and
            self.bottom <= image_height
        )

    def adjust_to_bounds(self, image_width: int, image_height: int) -> 'CropRect':
        """Adjust crop rect to fit within image bounds."""
        # Adjust position to fit within bounds
        x = max(0, min(self.x, image_width - self.width))
        y = max(0, min(self.y, image_height - self.height))

        # Adjust size if necessary
        width = min(self.width, image_width - x)
        height = min(self.height, image_height - y)

        return CropRect(x, y, width, height)

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary for serialization."""
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
        }


CropSet = Dict[str, CropRect]


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return min(max(value, minimum), maximum)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _pixel_span(offset: float, length: float, limit: int) -> Tuple[int, int]:
    """Round an axis span to pixels, never narrower than one pixel."""
    start = _round_half_up(offset)
    size = _round_half_up(length)
    if size < 1:
        # Extreme ratios: keep a 1px sliver inside the image
        size = 1
        start = min(start, limit - 1)
    return start, size


def calculate_crop(
    image_width: int,
    image_height: int,
    focal_x: float,
    focal_y: float,
    target_ratio: float
) -> CropRect:
    """
    Calculate the crop rectangle for an image, focal point and target ratio.

    Inputs are expected to be validated by the caller: positive image
    dimensions and a positive finite ratio.

    Args:
        image_width: Natural width of the image in pixels
        image_height: Natural height of the image in pixels
        focal_x: Focal point X position (0-100)
        focal_y: Focal point Y position (0-100)
        target_ratio: Target aspect ratio (width / height)

    Returns:
        CropRect with integer pixel coordinates

    Each side is at least one pixel, so a ratio too extreme for the image
    yields a 1px sliver instead of an empty rectangle.
    """
    image_ratio = image_width / image_height

    if target_ratio > image_ratio:
        # Target is wider than the image: full width
        crop_width = float(image_width)
        crop_height = image_width / target_ratio
    else:
        # Target is taller or equal: full height
        crop_height = float(image_height)
        crop_width = image_height * target_ratio

    focal_px_x = focal_x / 100 * image_width
    focal_px_y = focal_y / 100 * image_height

    crop_x = focal_px_x - crop_width / 2
    crop_y = focal_px_y - crop_height / 2

    # Edge focal points end up anchored to that edge
    crop_x = _clamp(crop_x, 0, image_width - crop_width)
    crop_y = _clamp(crop_y, 0, image_height - crop_height)

    x, width = _pixel_span(crop_x, crop_width, image_width)
    y, height = _pixel_span(crop_y, crop_height, image_height)
    return CropRect(x=x, y=y, width=width, height=height)


def calculate_all_crops(
    image_width: int,
    image_height: int,
    focal_x: float,
    focal_y: float,
    presets: Iterable[ResolvedPreset]
) -> CropSet:
    """
    Calculate crops for every preset at once.

    Args:
        image_width: Image width
        image_height: Image height
        focal_x: Focal point X position (0-100)
        focal_y: Focal point Y position (0-100)
        presets: Resolved presets, in registry order

    Returns:
        Dictionary mapping preset names to crop rects
    """
    crops: CropSet = {}
    for preset in presets:
        crops[preset.name] = calculate_crop(
            image_width, image_height, focal_x, focal_y, preset.numeric_ratio
        )
    return crops


def validate_crop_bounds(
    crop: CropRect,
    image_width: int,
    image_height: int
) -> Tuple[bool, Optional[str]]:
    """
    Validate that a crop rect is within image bounds.

    Args:
        crop: Crop rect to validate
        image_width: Image width
        image_height: Image height

    Returns:
        Tuple of (is_valid, error_message)
    """
    if crop.x < 0:
        return False, "Crop x position is negative"
    if crop.y < 0:
        return False, "Crop y position is negative"
    if crop.right > image_width:
        return False, "Crop extends beyond image width"
    if crop.bottom > image_height:
        return False, "Crop extends beyond image height"
    if crop.width <= 0:
        return False, "Crop width must be positive"
    if crop.height <= 0:
        return False, "Crop height must be positive"

    return True, None
