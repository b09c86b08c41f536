"""
Tests for the crop session controller.
"""

import asyncio
import json
import zipfile
import io

import pytest
from PIL import Image

from services.events import EventType
from services.focal_point import FocalPoint
from services.image_loader import LoadedImage
from services.presets import AddOutcome, CropPreset
from services.session import SessionController, SessionStatus
from utils.errors import (
    ConfigurationError, ContainerNotFoundError, ExportError, ImageLoadError,
    PresetNotFoundError, SessionDestroyedError
)

SIZES = {
    "big.png": (4000, 3000),
    "wide.png": (2000, 1000),
    "small.png": (400, 300),
}

PRESETS = [
    {"name": "landscape", "ratio": "16:9"},
    {"name": "square", "ratio": "1:1", "label": "Square"},
]


async def fake_loader(src: str) -> LoadedImage:
    if src not in SIZES:
        raise ImageLoadError(f"Failed to load image: {src}")
    width, height = SIZES[src]
    return LoadedImage(src=src, width=width, height=height, image=Image.new("RGB", (width, height), "red"))


class GatedLoader:
    """Loader whose loads finish only when the test releases them."""

    def __init__(self):
        self.gates = {}

    def release(self, src: str) -> None:
        self.gates.setdefault(src, asyncio.Event()).set()

    async def __call__(self, src: str) -> LoadedImage:
        await self.gates.setdefault(src, asyncio.Event()).wait()
        return await fake_loader(src)


def record(session: SessionController) -> list:
    events = []
    session.events.subscribe(events.append)
    return events


class TestSessionLifecycle:
    """Test construction, loading and destruction."""

    @pytest.fixture
    async def session(self, tmp_path):
        session = SessionController(tmp_path, {"src": "big.png", "presets": PRESETS}, fake_loader)
        await session.start()
        yield session
        session.destroy()

    def test_missing_container(self, tmp_path):
        with pytest.raises(ContainerNotFoundError) as exc_info:
            SessionController(tmp_path / "missing", {"src": "big.png"}, fake_loader)
        assert exc_info.value.code == "CONTAINER_NOT_FOUND"

    def test_container_must_be_directory(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")
        with pytest.raises(ContainerNotFoundError):
            SessionController(path, {"src": "big.png"}, fake_loader)

    def test_invalid_config(self, tmp_path):
        with pytest.raises(ConfigurationError):
            SessionController(tmp_path, {}, fake_loader)
        with pytest.raises(ConfigurationError):
            SessionController(tmp_path, {"src": "big.png", "layout": "masonry"}, fake_loader)

    def test_initial_state(self, tmp_path):
        session = SessionController(tmp_path, {"src": "big.png"}, fake_loader)
        assert session.status is SessionStatus.UNINITIALIZED
        assert session.get_crops() == {}
        assert session.image_size is None

    @pytest.mark.asyncio
    async def test_start_emits_ready_then_change(self, tmp_path):
        session = SessionController(tmp_path, {"src": "big.png", "presets": PRESETS}, fake_loader)
        events = record(session)

        assert await session.start() is True

        assert [e.type for e in events] == [EventType.READY, EventType.CHANGE]
        assert events[0].payload == {'image': {'src': 'big.png', 'width': 4000, 'height': 3000}}
        assert events[1].payload['focalPoint'] == {'x': 50.0, 'y': 50.0}
        assert events[1].payload['crops']['landscape'] == {'x': 0, 'y': 375, 'width': 4000, 'height': 2250}
        assert session.is_ready
        assert session.image_size == (4000, 3000)

    @pytest.mark.asyncio
    async def test_crops_follow_registry(self, session):
        crops = session.get_crops()
        assert list(crops) == ["landscape", "square"]
        assert crops["square"].to_dict() == {'x': 500, 'y': 0, 'width': 3000, 'height': 3000}
        assert session.get_crop("missing") is None

    @pytest.mark.asyncio
    async def test_get_crops_is_a_snapshot(self, session):
        crops = session.get_crops()
        crops.clear()
        assert len(session.get_crops()) == 2

    @pytest.mark.asyncio
    async def test_failed_load(self, tmp_path):
        session = SessionController(tmp_path, {"src": "nope.png"}, fake_loader)
        events = record(session)

        with pytest.raises(ImageLoadError):
            await session.start()

        assert session.status is SessionStatus.FAILED
        assert session.get_crops() == {}
        assert [e.type for e in events] == [EventType.ERROR]
        assert events[0].payload['code'] == "IMAGE_LOAD_FAILED"
        assert session.snapshot()['error']['code'] == "IMAGE_LOAD_FAILED"

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, tmp_path):
        session = SessionController(tmp_path, {"src": "nope.png"}, fake_loader)
        with pytest.raises(ImageLoadError):
            await session.start()

        assert await session.set_src("small.png") is True
        assert session.is_ready
        assert session.last_error is None
        assert session.image_size == (400, 300)

    @pytest.mark.asyncio
    async def test_failure_clears_previous_image(self, session):
        with pytest.raises(ImageLoadError):
            await session.set_src("nope.png")
        assert session.image_size is None
        assert session.get_crops() == {}

    @pytest.mark.asyncio
    async def test_unexpected_loader_error_is_wrapped(self, tmp_path):
        async def broken(src):
            raise RuntimeError("disk on fire")

        session = SessionController(tmp_path, {"src": "x"}, broken)
        with pytest.raises(ImageLoadError) as exc_info:
            await session.start()
        assert "disk on fire" in exc_info.value.message
        assert session.status is SessionStatus.FAILED

    @pytest.mark.asyncio
    async def test_newer_load_supersedes_older(self, tmp_path):
        loader = GatedLoader()
        session = SessionController(tmp_path, {"src": "big.png"}, loader)
        events = record(session)

        first = asyncio.create_task(session.set_src("big.png"))
        await asyncio.sleep(0)
        second = asyncio.create_task(session.set_src("wide.png"))
        await asyncio.sleep(0)

        loader.release("wide.png")
        assert await second is True
        loader.release("big.png")
        assert await first is False

        assert session.image_size == (2000, 1000)
        assert session.config.src == "wide.png"
        ready = [e for e in events if e.type is EventType.READY]
        assert len(ready) == 1
        assert ready[0].payload['image']['src'] == "wide.png"

    @pytest.mark.asyncio
    async def test_superseded_failure_is_ignored(self, tmp_path):
        loader = GatedLoader()
        session = SessionController(tmp_path, {"src": "nope.png"}, loader)
        events = record(session)

        first = asyncio.create_task(session.set_src("nope.png"))
        await asyncio.sleep(0)
        second = asyncio.create_task(session.set_src("small.png"))
        await asyncio.sleep(0)

        loader.release("small.png")
        assert await second is True
        loader.release("nope.png")
        assert await first is False

        assert session.is_ready
        assert EventType.ERROR not in [e.type for e in events]

    @pytest.mark.asyncio
    async def test_destroy(self, session):
        events = record(session)
        session.destroy()
        session.destroy()

        assert session.status is SessionStatus.DESTROYED
        assert session.get_crops() == {}
        assert session.events.closed
        assert events == []

        with pytest.raises(SessionDestroyedError):
            session.set_focal_point(10, 10)
        with pytest.raises(SessionDestroyedError):
            session.add_preset(CropPreset(name="x", ratio="1:1"))
        with pytest.raises(SessionDestroyedError):
            await session.set_src("small.png")

    @pytest.mark.asyncio
    async def test_destroy_during_load(self, tmp_path):
        loader = GatedLoader()
        session = SessionController(tmp_path, {"src": "big.png"}, loader)

        task = asyncio.create_task(session.start())
        await asyncio.sleep(0)
        session.destroy()
        loader.release("big.png")

        assert await task is False
        assert session.status is SessionStatus.DESTROYED
        assert session.image_size is None


class TestSessionInteractions:
    """Test focal point, preset and display operations."""

    @pytest.fixture
    async def session(self, tmp_path):
        session = SessionController(
            tmp_path,
            {"src": "big.png", "presets": PRESETS},
            fake_loader,
            frame_interval=0.01
        )
        await session.start()
        yield session
        session.destroy()

    @pytest.mark.asyncio
    async def test_set_focal_point(self, session):
        events = record(session)

        point = session.set_focal_point(0, 0)

        assert point == FocalPoint(0.0, 0.0)
        assert session.get_crop("square").to_dict() == {'x': 0, 'y': 0, 'width': 3000, 'height': 3000}
        assert [e.type for e in events] == [EventType.CHANGE]
        assert events[0].payload['crops']['square']['x'] == 0

    @pytest.mark.asyncio
    async def test_set_focal_point_clamps(self, session):
        point = session.set_focal_point(140, -3)
        assert point == FocalPoint(100.0, 0.0)
        assert session.get_focal_point() == point

    @pytest.mark.asyncio
    async def test_same_point_twice_emits_twice(self, session):
        events = record(session)
        session.set_focal_point(30, 30)
        crops = session.get_crops()
        session.set_focal_point(30, 30)

        assert len(events) == 2
        assert session.get_crops() == crops

    @pytest.mark.asyncio
    async def test_nudge(self, session):
        point = session.nudge_focal_point(1, -1, coarse=True)
        assert point == FocalPoint(55.0, 45.0)

    @pytest.mark.asyncio
    async def test_live_updates_are_coalesced(self, session):
        events = record(session)

        for x in (10, 20, 30, 40):
            session.request_focal_point(x, 50)
        assert events == []

        await asyncio.sleep(0.05)

        assert len(events) == 1
        assert session.get_focal_point() == FocalPoint(40.0, 50.0)

    @pytest.mark.asyncio
    async def test_explicit_set_cancels_live_update(self, session):
        session.request_focal_point(10, 10)
        session.set_focal_point(70, 70)
        await asyncio.sleep(0.05)
        assert session.get_focal_point() == FocalPoint(70.0, 70.0)

    @pytest.mark.asyncio
    async def test_add_preset(self, session):
        events = record(session)

        result = session.add_preset(CropPreset(name="banner", ratio="3:1"))

        assert result.outcome is AddOutcome.ADDED
        assert [e.type for e in events] == [EventType.PRESET_ADD, EventType.CHANGE]
        assert events[0].payload['preset']['name'] == "banner"
        assert "banner" in session.get_crops()

    @pytest.mark.asyncio
    async def test_add_duplicate_and_invalid(self, session):
        events = record(session)

        assert session.add_preset(CropPreset(name="square", ratio="2:1")).outcome is AddOutcome.DUPLICATE
        assert session.add_preset(CropPreset(name="bad", ratio="abc")).outcome is AddOutcome.INVALID

        assert events == []
        assert [p.name for p in session.get_presets()] == ["landscape", "square"]

    @pytest.mark.asyncio
    async def test_remove_preset(self, session):
        events = record(session)

        assert session.remove_preset("landscape") is True
        assert "landscape" not in session.get_crops()
        assert [e.type for e in events] == [EventType.PRESET_REMOVE, EventType.CHANGE]
        assert events[0].payload == {'name': 'landscape'}

        assert session.remove_preset("square") is False
        assert list(session.get_crops()) == ["square"]
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_replace_preset(self, session):
        resolved = session.replace_preset(CropPreset(name="landscape", ratio="21:9"))
        assert resolved.label == "landscape"
        assert session.get_crop("landscape").height == 1714
        with pytest.raises(PresetNotFoundError):
            session.replace_preset(CropPreset(name="missing", ratio="1:1"))

    @pytest.mark.asyncio
    async def test_presets_carry_resolved_defaults(self, session):
        presets = session.get_presets()
        assert presets[1].label == "Square"
        assert presets[0].label == "landscape"
        assert presets[0].color is not None

    @pytest.mark.asyncio
    async def test_changes_before_ready_are_silent(self, tmp_path):
        session = SessionController(tmp_path, {"src": "big.png"}, fake_loader)
        events = record(session)

        session.set_focal_point(10, 10)
        session.add_preset(CropPreset(name="extra", ratio="2:1"))

        assert [e.type for e in events] == [EventType.PRESET_ADD]
        assert session.get_crops() == {}

        await session.start()
        assert session.get_focal_point() == FocalPoint(10.0, 10.0)
        assert "extra" in session.get_crops()

    @pytest.mark.asyncio
    async def test_update(self, session):
        events = record(session)

        await session.update(
            focal_point={'x': 20, 'y': 80},
            layout="single",
            theme="dark",
            show_overlay=False,
            src="wide.png"
        )

        types = [e.type for e in events]
        assert types == [
            EventType.CHANGE, EventType.LAYOUT_CHANGE, EventType.THEME_CHANGE,
            EventType.READY, EventType.CHANGE
        ]
        assert session.config.layout == "single"
        assert session.config.theme == "dark"
        assert session.config.show_overlay is False
        assert session.config.show_dimensions is True
        assert session.get_focal_point() == FocalPoint(20.0, 80.0)
        assert session.image_size == (2000, 1000)

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_theme(self, session):
        with pytest.raises(ConfigurationError):
            await session.update(theme="sepia")
        assert session.config.theme == "light"

    @pytest.mark.asyncio
    async def test_snapshot(self, session):
        snapshot = session.snapshot()
        assert snapshot['status'] == "ready"
        assert snapshot['image'] == {'width': 4000, 'height': 3000}
        assert [p['name'] for p in snapshot['presets']] == ["landscape", "square"]
        assert snapshot['error'] is None


class TestSessionExport:
    """Test JSON and image exports."""

    @pytest.fixture
    async def session(self, tmp_path):
        session = SessionController(tmp_path, {"src": "small.png", "presets": PRESETS}, fake_loader)
        await session.start()
        yield session
        session.destroy()

    @pytest.mark.asyncio
    async def test_export_json(self, session):
        session.set_focal_point(25, 50)
        data = json.loads(session.export_json())

        assert data['version'] == "1.0"
        assert data['focalPoint'] == {'x': 25.0, 'y': 50.0}
        assert data['image'] == {'src': 'small.png', 'width': 400, 'height': 300}
        assert list(data['crops']) == ["landscape", "square"]
        assert data['crops']['square'] == {
            'x': 0, 'y': 0, 'width': 300, 'height': 300,
            'preset': {'name': 'square', 'ratio': '1:1', 'label': 'Square'}
        }
        assert data['crops']['landscape']['preset']['label'] == "landscape"

    @pytest.mark.asyncio
    async def test_export_json_without_image(self, tmp_path):
        session = SessionController(tmp_path, {"src": "nope.png"}, fake_loader)
        with pytest.raises(ImageLoadError):
            await session.start()
        data = session.export_data()
        assert data['image'] == {'src': 'nope.png', 'width': 0, 'height': 0}
        assert data['crops'] == {}

    @pytest.mark.asyncio
    async def test_export_crop(self, session):
        content = await session.export_crop("square", "png")
        with Image.open(io.BytesIO(content)) as img:
            assert img.size == (300, 300)
            assert img.format == "PNG"

    @pytest.mark.asyncio
    async def test_export_unknown_crop(self, session):
        with pytest.raises(PresetNotFoundError):
            await session.export_crop("missing")

    @pytest.mark.asyncio
    async def test_export_requires_image(self, tmp_path):
        session = SessionController(tmp_path, {"src": "small.png"}, fake_loader)
        with pytest.raises(ExportError):
            await session.export_all()

    @pytest.mark.asyncio
    async def test_export_all_keeps_registry_order(self, session):
        session.add_preset(CropPreset(name="banner", ratio="3:1"))
        exports = await session.export_all("jpeg", 0.8)
        assert [name for name, _ in exports] == ["landscape", "square", "banner"]

    @pytest.mark.asyncio
    async def test_export_zip(self, session):
        archive = await session.export_zip("webp", 0.5)
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            assert zf.namelist() == ["landscape.webp", "square.webp"]

    @pytest.mark.asyncio
    async def test_export_to_container(self, session, tmp_path):
        paths = await session.export_to_container("jpeg")

        assert [p.name for p in paths] == ["landscape.jpg", "square.jpg", "crops.json"]
        for path in paths:
            assert path.parent == tmp_path
            assert path.exists()
        manifest = json.loads((tmp_path / "crops.json").read_text())
        assert manifest['version'] == "1.0"

    @pytest.mark.asyncio
    async def test_export_to_container_disambiguates_names(self, session, tmp_path):
        session.add_preset(CropPreset(name="a b", ratio="4:3"))
        session.add_preset(CropPreset(name="a_b", ratio="3:4"))
        session.add_preset(CropPreset(name="../outside", ratio="1:1"))

        paths = await session.export_to_container("png")

        assert [p.name for p in paths] == [
            "landscape.png", "square.png", "a_b.png", "a_b-3.png", "outside.png", "crops.json"
        ]
        assert all(path.parent == tmp_path for path in paths)
        with Image.open(tmp_path / "a_b.png") as img:
            assert img.size == (400, 300)
        with Image.open(tmp_path / "a_b-3.png") as img:
            assert img.size == (225, 300)
