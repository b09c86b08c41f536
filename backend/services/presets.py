"""
Crop preset configuration system for FocalCrop.
Defines the built-in presets, preset validation/resolution and the
per-session preset registry.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Iterator, Any
from enum import Enum

from services.ratios import RatioSpec, parse_ratio
from utils.errors import AppError, InvalidPresetError, PresetNotFoundError

logger = logging.getLogger(__name__)


# Default overlay colors, assigned by preset position
DEFAULT_COLORS: List[str] = [
    "#FF6B6B",  # red
    "#4ECDC4",  # teal
    "#45B7D1",  # blue
    "#96CEB4",  # green
    "#FFEAA7",  # yellow
    "#DDA0DD",  # plum
    "#98D8C8",  # mint
    "#F7DC6F",  # gold
    "#A29BFE",  # lavender
    "#FD79A8",  # pink
]


@dataclass(frozen=True)
class CropPreset:
    """A named target aspect ratio with display metadata."""
    name: str
    ratio: RatioSpec
    label: Optional[str] = None
    color: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CropPreset":
        """Build a preset from a plain mapping (JSON payloads, config files)."""
        return cls(
            name=data.get("name"),
            ratio=data.get("ratio"),
            label=data.get("label"),
            color=data.get("color"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass(frozen=True)
class ResolvedPreset:
    """Preset with its parsed ratio and defaults filled in."""
    name: str
    ratio: RatioSpec
    numeric_ratio: float
    label: str
    color: str

    def to_preset(self) -> CropPreset:
        """Return the plain preset, carrying the resolved label and color."""
        return CropPreset(
            name=self.name,
            ratio=self.ratio,
            label=self.label,
            color=self.color,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


# Built-in crop presets
BUILT_IN_PRESETS: List[CropPreset] = [
    CropPreset(name="landscape", ratio="16:9", label="Landscape 16:9", color="#FF6B6B"),
    CropPreset(name="ultrawide", ratio="21:9", label="Ultrawide 21:9", color="#4ECDC4"),
    CropPreset(name="standard", ratio="4:3", label="Standard 4:3", color="#45B7D1"),
    CropPreset(name="square", ratio="1:1", label="Square 1:1", color="#96CEB4"),
    CropPreset(name="portrait", ratio="9:16", label="Portrait 9:16", color="#FFEAA7"),
    CropPreset(name="social-portrait", ratio="4:5", label="Social Portrait 4:5", color="#DDA0DD"),
    CropPreset(name="og-image", ratio="1.91:1", label="OG Image 1.91:1", color="#98D8C8"),
    CropPreset(name="banner", ratio="3:1", label="Banner 3:1", color="#F7DC6F"),
]


def validate_preset(preset: CropPreset) -> Optional[str]:
    """
    Validate a preset.

    Args:
        preset: Preset to check

    Returns:
        None if the preset is valid, otherwise a description of the problem
    """
    if not isinstance(preset.name, str) or not preset.name.strip():
        return 'Preset must have a non-empty "name" string.'
    if preset.ratio is None:
        return f'Preset "{preset.name}" must have a "ratio" value.'
    try:
        parse_ratio(preset.ratio)
    except AppError:
        return f'Preset "{preset.name}" has invalid ratio "{preset.ratio}".'
    return None


def resolve_preset(preset: CropPreset, index: int) -> ResolvedPreset:
    """
    Resolve a preset by parsing its ratio and filling defaults.

    The default color depends only on ``index``, so the same position
    always receives the same palette entry.

    Raises:
        InvalidRatioError: If the ratio cannot be parsed
    """
    return ResolvedPreset(
        name=preset.name,
        ratio=preset.ratio,
        numeric_ratio=parse_ratio(preset.ratio),
        label=preset.label or preset.name,
        color=preset.color or DEFAULT_COLORS[index % len(DEFAULT_COLORS)],
    )


class AddOutcome(str, Enum):
    """Result of adding a preset to a registry."""
    ADDED = "added"
    INVALID = "invalid"
    DUPLICATE = "duplicate"


@dataclass
class AddResult:
    outcome: AddOutcome
    preset: Optional[ResolvedPreset] = None
    message: Optional[str] = None

    @property
    def added(self) -> bool:
        return self.outcome is AddOutcome.ADDED


class PresetRegistry:
    """
    Ordered set of resolved presets keyed by name.

    Names are unique and the registry never drops below one member once
    built.
    """

    def __init__(self, presets: Optional[List[CropPreset]] = None):
        self._presets: List[ResolvedPreset] = []
        self._load(presets if presets is not None else BUILT_IN_PRESETS)

        if not self._presets:
            logger.warning("No valid presets supplied, falling back to built-in presets")
            self._load(BUILT_IN_PRESETS)

    def _load(self, presets: List[CropPreset]) -> None:
        # Colors follow the position in the supplied list, skipped entries included
        for index, preset in enumerate(presets):
            error = validate_preset(preset)
            if error:
                logger.warning(f"{error} Skipping.")
                continue
            if preset.name in self:
                logger.warning(f'Preset name "{preset.name}" already exists. Skipping duplicate.')
                continue
            self._presets.append(resolve_preset(preset, index))

    def add(self, preset: CropPreset) -> AddResult:
        """
        Validate, resolve and append a preset.

        Invalid presets are rejected with a warning; duplicate names are
        ignored. Neither case mutates the registry.
        """
        error = validate_preset(preset)
        if error:
            logger.warning(error)
            return AddResult(AddOutcome.INVALID, message=error)

        if preset.name in self:
            return AddResult(
                AddOutcome.DUPLICATE,
                message=f'Preset name "{preset.name}" already exists.'
            )

        resolved = resolve_preset(preset, len(self._presets))
        self._presets.append(resolved)
        return AddResult(AddOutcome.ADDED, preset=resolved)

    def remove(self, name: str) -> bool:
        """
        Remove a preset by name.

        Returns:
            False if the preset is the last one left or does not exist
        """
        if len(self._presets) <= 1:
            logger.warning("Cannot remove last preset. At least 1 preset is required.")
            return False

        index = self._index_of(name)
        if index is None:
            return False

        del self._presets[index]
        return True

    def replace(self, preset: CropPreset) -> ResolvedPreset:
        """
        Re-resolve an existing preset in place, keeping its position.

        Raises:
            InvalidPresetError: If the new definition is invalid
            PresetNotFoundError: If no preset has this name
        """
        error = validate_preset(preset)
        if error:
            raise InvalidPresetError(error, details={"name": preset.name})

        index = self._index_of(preset.name)
        if index is None:
            raise PresetNotFoundError(preset.name)

        resolved = resolve_preset(preset, index)
        self._presets[index] = resolved
        return resolved

    def get(self, name: str) -> Optional[ResolvedPreset]:
        index = self._index_of(name)
        return None if index is None else self._presets[index]

    def list(self) -> List[ResolvedPreset]:
        """All presets in insertion order."""
        return list(self._presets)

    def names(self) -> List[str]:
        return [preset.name for preset in self._presets]

    def _index_of(self, name: str) -> Optional[int]:
        for index, preset in enumerate(self._presets):
            if preset.name == name:
                return index
        return None

    def __contains__(self, name: object) -> bool:
        return any(preset.name == name for preset in self._presets)

    def __iter__(self) -> Iterator[ResolvedPreset]:
        return iter(list(self._presets))

    def __len__(self) -> int:
        return len(self._presets)
