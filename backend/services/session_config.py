"""
Session configuration.

Every optional field's default lives in ``resolve_config`` so the
effective configuration of a session can be read in one place.
"""

from dataclasses import dataclass, replace as dataclass_replace
from typing import Any, Dict, List, Optional, Tuple

from services.focal_point import FocalPoint, normalize_point
from services.presets import BUILT_IN_PRESETS, CropPreset
from utils.errors import ConfigurationError

LAYOUTS = ("grid", "single")
THEMES = ("light", "dark")

DEFAULT_FOCAL_POINT = FocalPoint(50.0, 50.0)
DEFAULT_LAYOUT = "grid"
DEFAULT_THEME = "light"
DEFAULT_SHOW_OVERLAY = True
DEFAULT_SHOW_DIMENSIONS = True


@dataclass(frozen=True)
class ResolvedConfig:
    """Session configuration with every default applied."""
    src: str
    focal_point: FocalPoint
    presets: Tuple[CropPreset, ...]
    layout: str
    theme: str
    show_overlay: bool
    show_dimensions: bool

    def replace(self, **changes: Any) -> "ResolvedConfig":
        """Return a copy with some fields changed, re-checking layout and theme."""
        updated = dataclass_replace(self, **changes)
        _check_choice("layout", updated.layout, LAYOUTS)
        _check_choice("theme", updated.theme, THEMES)
        return updated


def _check_choice(field_name: str, value: str, choices: Tuple[str, ...]) -> None:
    if value not in choices:
        raise ConfigurationError(
            f"Invalid {field_name} '{value}'. Expected one of: {', '.join(choices)}",
            details={field_name: value, "allowed": list(choices)}
        )


def _as_focal_point(value: Any) -> FocalPoint:
    if isinstance(value, FocalPoint):
        return normalize_point(value.x, value.y)
    if isinstance(value, dict):
        return normalize_point(value.get('x'), value.get('y'))
    raise ConfigurationError(
        f"Invalid focal point {value!r}",
        details={"focal_point": repr(value)}
    )


def _as_presets(values: List[Any]) -> Tuple[CropPreset, ...]:
    return tuple(
        value if isinstance(value, CropPreset) else CropPreset.from_dict(value)
        for value in values
    )


def resolve_config(config: Dict[str, Any]) -> ResolvedConfig:
    """
    Build the resolved configuration of a session.

    Args:
        config: Caller-supplied fields; only ``src`` is required

    Raises:
        ConfigurationError: If src is missing or a field holds an unknown value
    """
    src = config.get("src")
    if not isinstance(src, str) or not src:
        raise ConfigurationError("Configuration requires a non-empty 'src'")

    focal_point = config.get("focal_point")
    presets = config.get("presets")

    resolved = ResolvedConfig(
        src=src,
        focal_point=DEFAULT_FOCAL_POINT if focal_point is None else _as_focal_point(focal_point),
        presets=tuple(BUILT_IN_PRESETS) if presets is None else _as_presets(presets),
        layout=_pick(config, "layout", DEFAULT_LAYOUT),
        theme=_pick(config, "theme", DEFAULT_THEME),
        show_overlay=_pick(config, "show_overlay", DEFAULT_SHOW_OVERLAY),
        show_dimensions=_pick(config, "show_dimensions", DEFAULT_SHOW_DIMENSIONS),
    )
    _check_choice("layout", resolved.layout, LAYOUTS)
    _check_choice("theme", resolved.theme, THEMES)
    return resolved


def _pick(config: Dict[str, Any], key: str, default: Any) -> Any:
    value: Optional[Any] = config.get(key)
    return default if value is None else value
