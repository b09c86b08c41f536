"""
Focal point state and input translation.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from utils.errors import InvalidFocalPointError

logger = logging.getLogger(__name__)

FOCAL_MIN = 0.0
FOCAL_MAX = 100.0

# Keyboard nudges, in percentage points
KEY_STEP = 1
KEY_STEP_COARSE = 5


@dataclass(frozen=True)
class FocalPoint:
    """Focal point position, 0-100 on each axis."""
    x: float = 50.0
    y: float = 50.0

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y}


def _coerce(value, axis: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidFocalPointError(
            f"Focal point {axis} must be a number, got {value!r}",
            details={axis: repr(value)}
        )
    if math.isnan(value):
        raise InvalidFocalPointError(
            f"Focal point {axis} must not be NaN",
            details={axis: "NaN"}
        )
    return float(value)


def _quantize(value: float) -> float:
    """Clamp to [0, 100] and round half up to one decimal."""
    clamped = min(max(value, FOCAL_MIN), FOCAL_MAX)
    return math.floor(clamped * 10 + 0.5) / 10


def normalize_point(x, y) -> FocalPoint:
    """
    Validate, clamp and quantize raw coordinates.

    Raises:
        InvalidFocalPointError: If a coordinate is not a number or is NaN
    """
    return FocalPoint(
        x=_quantize(_coerce(x, 'x')),
        y=_quantize(_coerce(y, 'y')),
    )


def point_from_pointer(
    pointer_x: float,
    pointer_y: float,
    display_width: float,
    display_height: float
) -> FocalPoint:
    """
    Translate a pointer position over the displayed image into a focal point.

    Args:
        pointer_x: Pointer X relative to the image's left edge, in display pixels
        pointer_y: Pointer Y relative to the image's top edge, in display pixels
        display_width: Rendered image width in display pixels
        display_height: Rendered image height in display pixels
    """
    if display_width <= 0 or display_height <= 0:
        raise InvalidFocalPointError(
            "Display size must be positive",
            details={"width": display_width, "height": display_height}
        )
    return normalize_point(
        _coerce(pointer_x, 'x') / display_width * 100,
        _coerce(pointer_y, 'y') / display_height * 100,
    )


class FocalPointState:
    """Holds the current focal point; every write is clamped and quantized."""

    def __init__(self, initial: Optional[FocalPoint] = None):
        initial = initial or FocalPoint()
        self._point = normalize_point(initial.x, initial.y)

    @property
    def point(self) -> FocalPoint:
        return self._point

    def set(self, x, y) -> FocalPoint:
        """Store a new focal point and return the stored value."""
        self._point = normalize_point(x, y)
        return self._point

    def nudge(self, dx: int, dy: int, coarse: bool = False) -> FocalPoint:
        """Move the focal point by keyboard steps (1 point, or 5 when coarse)."""
        step = KEY_STEP_COARSE if coarse else KEY_STEP
        return self.set(self._point.x + dx * step, self._point.y + dy * step)


class FrameCoalescer:
    """
    Coalesces a stream of live focal point updates.

    Only the latest point submitted within one frame interval is flushed,
    so a pointer drag costs at most one recomputation per frame.
    """

    def __init__(self, flush: Callable[[FocalPoint], None], interval: float = 0.016):
        self._flush = flush
        self.interval = interval
        self._pending: Optional[FocalPoint] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> Optional[FocalPoint]:
        return self._pending

    def submit(self, point: FocalPoint) -> None:
        """Record the latest point and schedule a flush if none is pending."""
        self._pending = point
        if self._handle is None:
            loop = asyncio.get_running_loop()
            self._handle = loop.call_later(self.interval, self._run)

    def _run(self) -> None:
        self._handle = None
        point, self._pending = self._pending, None
        if point is not None:
            self._flush(point)

    def cancel(self) -> None:
        """Drop any pending update."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
