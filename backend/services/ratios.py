"""
Aspect ratio parsing.

Accepts "W:H", "W/H", a decimal string such as "1.91", or a plain number,
and returns width / height as a float.
"""

import math
import re
from typing import Union

from utils.errors import InvalidRatioError

RatioSpec = Union[str, int, float]

_RATIO_SEPARATORS = re.compile(r"[:/]")


def _positive_finite(value: float) -> bool:
    return value > 0 and math.isfinite(value)


def _to_float(text: str) -> float:
    """Parse a numeric string, returning NaN when it is not a number."""
    try:
        return float(text.strip())
    except ValueError:
        return math.nan


def parse_ratio(value: RatioSpec) -> float:
    """
    Parse a ratio specification into a numeric ratio (width / height).

    Args:
        value: "16:9", "16/9", "1.91", "1.91:1" or a number such as 1.778

    Returns:
        Positive finite ratio

    Raises:
        InvalidRatioError: If the value is not a positive finite ratio
    """
    # bool is an int subclass; True is not a ratio
    if isinstance(value, bool):
        raise InvalidRatioError(
            f"Invalid ratio: {value!r}. Must be a positive finite number.",
            details={"ratio": value}
        )

    if isinstance(value, (int, float)):
        if not _positive_finite(float(value)):
            raise InvalidRatioError(
                f"Invalid ratio: {value}. Must be a positive finite number.",
                details={"ratio": value}
            )
        return float(value)

    if not isinstance(value, str):
        raise InvalidRatioError(
            f"Invalid ratio: {value!r}. Expected a string or a number.",
            details={"ratio": repr(value)}
        )

    parts = _RATIO_SEPARATORS.split(value)
    if len(parts) == 2:
        width = _to_float(parts[0])
        height = _to_float(parts[1])
        if _positive_finite(width) and _positive_finite(height):
            return width / height

    decimal = _to_float(value)
    if _positive_finite(decimal):
        return decimal

    raise InvalidRatioError(
        f'Invalid ratio: "{value}". Expected "W:H", "W/H", or a positive number.',
        details={"ratio": value}
    )
