"""
Crop session controller.

A session owns one image, one focal point, one preset registry and the
crop set derived from them. Every mutation recomputes the full crop set
and emits a single ``change`` event; rendering and export collaborators
only ever read snapshots or listen to the event channel.
"""

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import aiofiles

from services.crop_calculator import CropRect, CropSet, calculate_all_crops
from services.crop_exporter import (
    DEFAULT_QUALITY, build_zip, export_all, export_filenames, render_crop
)
from services.events import EventChannel, EventType
from services.focal_point import FocalPoint, FocalPointState, FrameCoalescer, normalize_point
from services.image_loader import LoadedImage
from services.presets import AddResult, CropPreset, PresetRegistry, ResolvedPreset
from services.session_config import ResolvedConfig, resolve_config
from utils.errors import (
    ContainerNotFoundError, ExportError, ImageLoadError,
    PresetNotFoundError, SessionDestroyedError
)

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

ImageLoader = Callable[[str], Awaitable[LoadedImage]]


class SessionStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    DESTROYED = "destroyed"


class SessionController:
    """Orchestrates focal point, presets, image and crop recomputation."""

    def __init__(
        self,
        container: Union[str, Path],
        config: Union[Dict[str, Any], ResolvedConfig],
        loader: ImageLoader,
        frame_interval: float = 0.016,
        session_id: Optional[str] = None
    ):
        """
        Args:
            container: Existing directory that receives this session's exports
            config: Raw or resolved session configuration
            loader: Coroutine function turning a src into a LoadedImage
            frame_interval: Seconds between coalesced live focal point updates
            session_id: Identifier used in logs

        Raises:
            ContainerNotFoundError: If the container directory does not exist
            ConfigurationError: If the configuration is invalid
        """
        container_path = Path(container)
        if not container_path.is_dir():
            raise ContainerNotFoundError(
                f"Container not found: \"{container}\"",
                details={"container": str(container)}
            )

        self.container = container_path
        self.session_id = session_id or container_path.name
        self.config = config if isinstance(config, ResolvedConfig) else resolve_config(config)
        self.events = EventChannel()
        self.status = SessionStatus.UNINITIALIZED
        self.last_error: Optional[Dict[str, str]] = None

        self._loader = loader
        self._registry = PresetRegistry(list(self.config.presets))
        self._focal = FocalPointState(self.config.focal_point)
        self._coalescer = FrameCoalescer(self._apply_live_point, interval=frame_interval)
        self._image: Optional[LoadedImage] = None
        self._crops: CropSet = {}
        self._load_generation = 0

    # === Lifecycle ===

    async def start(self) -> bool:
        """Perform the first image load. Emits ``ready`` then ``change``."""
        return await self.set_src(self.config.src)

    @property
    def is_ready(self) -> bool:
        return self.status is SessionStatus.READY

    @property
    def image_size(self) -> Optional[Tuple[int, int]]:
        if self._image is None:
            return None
        return (self._image.width, self._image.height)

    def _ensure_alive(self) -> None:
        if self.status is SessionStatus.DESTROYED:
            raise SessionDestroyedError()

    async def set_src(self, src: str) -> bool:
        """
        Replace the session image.

        Only the most recent call may change session state; an older load
        that finishes later is discarded.

        Returns:
            True if this load became the current image, False if superseded

        Raises:
            ImageLoadError: If this load is still current and fails
        """
        self._ensure_alive()

        self._load_generation += 1
        generation = self._load_generation
        self.config = self.config.replace(src=src)
        self.status = SessionStatus.LOADING
        logger.info(f"[{self.session_id}] Loading image (attempt {generation})")

        try:
            loaded = await self._loader(src)
        except ImageLoadError as e:
            if generation != self._load_generation:
                logger.debug(f"[{self.session_id}] Ignoring failure of superseded load {generation}")
                return False
            self._fail(e)
            raise
        except Exception as e:
            if generation != self._load_generation:
                logger.debug(f"[{self.session_id}] Ignoring failure of superseded load {generation}")
                return False
            error = ImageLoadError(f"Failed to load image: {e}")
            self._fail(error)
            raise error from e

        if generation != self._load_generation:
            logger.debug(f"[{self.session_id}] Discarding superseded load {generation}")
            loaded.close()
            return False

        self._release_image()
        self._image = loaded
        self.status = SessionStatus.READY
        self.last_error = None
        logger.info(f"[{self.session_id}] Image ready ({loaded.width}x{loaded.height})")

        self.events.emit(EventType.READY, {
            'image': {'src': src, 'width': loaded.width, 'height': loaded.height}
        })
        self._recalculate_and_notify()
        return True

    def _fail(self, error: ImageLoadError) -> None:
        self._release_image()
        self._crops = {}
        self.status = SessionStatus.FAILED
        self.last_error = {'code': error.code, 'message': error.message}
        logger.warning(f"[{self.session_id}] {error.code}: {error.message}")
        self.events.emit(EventType.ERROR, dict(self.last_error))

    def _release_image(self) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None

    def destroy(self) -> None:
        """Release the image, pending updates and event streams."""
        if self.status is SessionStatus.DESTROYED:
            return
        # In-flight loads see a stale generation and drop their result
        self._load_generation += 1
        self._coalescer.cancel()
        self._release_image()
        self._crops = {}
        self.status = SessionStatus.DESTROYED
        self.events.close()
        logger.info(f"[{self.session_id}] Session destroyed")

    # === Recalculation ===

    def _recalculate(self) -> None:
        if self._image is None:
            self._crops = {}
            return
        point = self._focal.point
        self._crops = calculate_all_crops(
            self._image.width,
            self._image.height,
            point.x,
            point.y,
            self._registry,
        )

    def _recalculate_and_notify(self) -> None:
        self._recalculate()
        if self.is_ready:
            self.events.emit(EventType.CHANGE, self._change_payload())

    def _change_payload(self) -> Dict[str, Any]:
        return {
            'focalPoint': self._focal.point.to_dict(),
            'crops': {name: crop.to_dict() for name, crop in self._crops.items()},
        }

    # === Focal point ===

    def set_focal_point(self, x, y) -> FocalPoint:
        """Clamp, store and recompute. Always emits ``change`` once ready."""
        self._ensure_alive()
        # An explicit set wins over any pending live update
        self._coalescer.cancel()
        point = self._focal.set(x, y)
        self._recalculate_and_notify()
        return point

    def request_focal_point(self, x, y) -> FocalPoint:
        """
        Live variant of set_focal_point for continuous input such as a drag.

        The point is validated now and applied on the next frame; further
        requests within the same frame replace it.
        """
        self._ensure_alive()
        point = normalize_point(x, y)
        self._coalescer.submit(point)
        return point

    def _apply_live_point(self, point: FocalPoint) -> None:
        if self.status is SessionStatus.DESTROYED:
            return
        self._focal.set(point.x, point.y)
        self._recalculate_and_notify()

    def nudge_focal_point(self, dx: int, dy: int, coarse: bool = False) -> FocalPoint:
        """Keyboard-style move of the focal point."""
        self._ensure_alive()
        self._coalescer.cancel()
        point = self._focal.nudge(dx, dy, coarse)
        self._recalculate_and_notify()
        return point

    def get_focal_point(self) -> FocalPoint:
        return self._focal.point

    # === Crops ===

    def get_crops(self) -> CropSet:
        return dict(self._crops)

    def get_crop(self, name: str) -> Optional[CropRect]:
        return self._crops.get(name)

    # === Presets ===

    def add_preset(self, preset: CropPreset) -> AddResult:
        """Add a preset; invalid and duplicate presets leave the session unchanged."""
        self._ensure_alive()
        result = self._registry.add(preset)
        if not result.added:
            return result

        self.events.emit(EventType.PRESET_ADD, {'preset': result.preset.to_preset().to_dict()})
        self._recalculate_and_notify()
        return result

    def remove_preset(self, name: str) -> bool:
        """Remove a preset. The last remaining preset cannot be removed."""
        self._ensure_alive()
        if not self._registry.remove(name):
            return False

        self.events.emit(EventType.PRESET_REMOVE, {'name': name})
        self._recalculate_and_notify()
        return True

    def replace_preset(self, preset: CropPreset) -> ResolvedPreset:
        """Redefine an existing preset in place."""
        self._ensure_alive()
        resolved = self._registry.replace(preset)
        self._recalculate_and_notify()
        return resolved

    def get_presets(self) -> List[CropPreset]:
        return [preset.to_preset() for preset in self._registry]

    def get_resolved_presets(self) -> List[ResolvedPreset]:
        return self._registry.list()

    # === Display settings ===

    def set_layout(self, layout: str) -> None:
        self._ensure_alive()
        self.config = self.config.replace(layout=layout)
        self.events.emit(EventType.LAYOUT_CHANGE, {'layout': layout})

    def set_theme(self, theme: str) -> None:
        self._ensure_alive()
        self.config = self.config.replace(theme=theme)
        self.events.emit(EventType.THEME_CHANGE, {'theme': theme})

    async def update(
        self,
        src: Optional[str] = None,
        focal_point: Optional[Dict[str, float]] = None,
        layout: Optional[str] = None,
        theme: Optional[str] = None,
        show_overlay: Optional[bool] = None,
        show_dimensions: Optional[bool] = None
    ) -> None:
        """
        Apply a partial configuration. Each given field is applied on its
        own; the image source is loaded last.
        """
        self._ensure_alive()
        if focal_point is not None:
            self.set_focal_point(focal_point.get('x'), focal_point.get('y'))
        if layout is not None:
            self.set_layout(layout)
        if theme is not None:
            self.set_theme(theme)
        if show_overlay is not None:
            self.config = self.config.replace(show_overlay=show_overlay)
        if show_dimensions is not None:
            self.config = self.config.replace(show_dimensions=show_dimensions)
        if src is not None:
            await self.set_src(src)

    # === Export ===

    def export_data(self) -> Dict[str, Any]:
        """Versioned snapshot of focal point, image and crops."""
        size = self.image_size or (0, 0)
        data: Dict[str, Any] = {
            'version': EXPORT_VERSION,
            'focalPoint': self._focal.point.to_dict(),
            'image': {
                'src': self.config.src,
                'width': size[0],
                'height': size[1],
            },
            'crops': {},
        }
        for preset in self._registry:
            crop = self._crops.get(preset.name)
            if crop is None:
                continue
            data['crops'][preset.name] = {
                **crop.to_dict(),
                'preset': {'name': preset.name, 'ratio': preset.ratio, 'label': preset.label},
            }
        return data

    def export_json(self) -> str:
        return json.dumps(self.export_data(), indent=2)

    def _require_image(self) -> LoadedImage:
        self._ensure_alive()
        if self._image is None:
            raise ExportError(
                "No image loaded",
                details={"status": self.status.value}
            )
        return self._image

    async def export_crop(
        self,
        name: str,
        format: str = 'png',
        quality: Optional[float] = DEFAULT_QUALITY
    ) -> bytes:
        """Encode one preset's crop."""
        image = self._require_image()
        crop = self._crops.get(name)
        if crop is None:
            raise PresetNotFoundError(name)
        return await asyncio.to_thread(render_crop, image.image, crop, format, quality)

    async def export_all(
        self,
        format: str = 'png',
        quality: Optional[float] = DEFAULT_QUALITY
    ) -> List[Tuple[str, bytes]]:
        """Encode every crop; the result follows registry order."""
        image = self._require_image()
        return await export_all(image.image, dict(self._crops), self._registry.list(), format, quality)

    async def export_zip(
        self,
        format: str = 'png',
        quality: Optional[float] = DEFAULT_QUALITY
    ) -> bytes:
        exports = await self.export_all(format, quality)
        return build_zip(exports, format)

    async def export_to_container(
        self,
        format: str = 'png',
        quality: Optional[float] = DEFAULT_QUALITY
    ) -> List[Path]:
        """Write every crop plus the JSON snapshot into the container."""
        exports = await self.export_all(format, quality)
        filenames = export_filenames([name for name, _ in exports], format)

        paths = []
        for filename, (_, content) in zip(filenames, exports):
            path = self.container / filename
            async with aiofiles.open(path, 'wb') as f:
                await f.write(content)
            paths.append(path)

        manifest = self.container / "crops.json"
        async with aiofiles.open(manifest, 'w') as f:
            await f.write(self.export_json())
        paths.append(manifest)

        logger.info(f"[{self.session_id}] Exported {len(exports)} crops to {self.container}")
        return paths

    def snapshot(self) -> Dict[str, Any]:
        """State summary for API responses."""
        size = self.image_size
        return {
            'session_id': self.session_id,
            'status': self.status.value,
            'src': self.config.src,
            'image': None if size is None else {'width': size[0], 'height': size[1]},
            'focal_point': self._focal.point.to_dict(),
            'presets': [preset.to_dict() for preset in self._registry],
            'crops': {name: crop.to_dict() for name, crop in self._crops.items()},
            'layout': self.config.layout,
            'theme': self.config.theme,
            'show_overlay': self.config.show_overlay,
            'show_dimensions': self.config.show_dimensions,
            'error': self.last_error,
        }
