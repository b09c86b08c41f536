"""
Crop session endpoints: focal point, presets, crops and exports.
"""

import io
import json
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, Query, Response
from fastapi.responses import StreamingResponse

from core.config import settings
from models.session import (
    SessionCreateRequest, SessionUpdateRequest, SessionResponse, SrcRequest,
    FocalPointModel, NudgeRequest, PointerRequest, PresetModel,
    PresetAddResponse, ResolvedPresetModel, CropRectModel, ExportRequest, ExportResponse
)
from services.crop_exporter import export_filenames, media_type
from services.focal_point import point_from_pointer
from services.presets import AddOutcome
from services.session import SessionController
from services.session_manager import SessionManager, get_session_manager
from utils.error_handlers import InvalidPresetError, PresetNotFoundError, ValidationError
from utils.file_utils import sanitize_filename
from utils.validators import validate_export_settings

router = APIRouter()


def get_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
) -> SessionController:
    """Resolve the session named in the path"""
    return manager.get(session_id)


def _export_params(format: Optional[str], quality: Optional[float]) -> tuple[str, float]:
    format = validate_export_settings(format or settings.DEFAULT_EXPORT_FORMAT, quality)
    return format, settings.DEFAULT_EXPORT_QUALITY if quality is None else quality


def _attachment(filename: str) -> str:
    """Content-Disposition with an ASCII fallback and an RFC 5987 UTF-8 name"""
    fallback = sanitize_filename(filename.encode("ascii", "replace").decode("ascii"))
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    request: SessionCreateRequest = Body(...),
    manager: SessionManager = Depends(get_session_manager)
):
    """
    Create a crop session and load its image.

    - Builds the preset registry (invalid presets are skipped)
    - Loads the image and computes the initial crops
    - A failed load returns the session with status "failed"
    """
    session = await manager.create(request.model_dump(exclude_none=True))
    return session.snapshot()


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session_state(session: SessionController = Depends(get_session)):
    """Get the current session state"""
    return session.snapshot()


@router.patch("/{session_id}", response_model=SessionResponse)
async def update_session(
    request: SessionUpdateRequest = Body(...),
    session: SessionController = Depends(get_session)
):
    """Apply a partial configuration update"""
    changes = request.model_dump(exclude_none=True)
    await session.update(**changes)
    return session.snapshot()


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
):
    """Destroy a session and its exported files"""
    manager.destroy(session_id)
    return {
        "session_id": session_id,
        "deleted": True
    }


@router.put("/{session_id}/src", response_model=SessionResponse)
async def set_session_src(
    request: SrcRequest = Body(...),
    session: SessionController = Depends(get_session)
):
    """Replace the session image"""
    await session.set_src(request.src)
    return session.snapshot()


# === Focal point ===

@router.get("/{session_id}/focal-point", response_model=FocalPointModel)
async def get_focal_point(session: SessionController = Depends(get_session)):
    return session.get_focal_point().to_dict()


@router.put("/{session_id}/focal-point", response_model=FocalPointModel)
async def set_focal_point(
    request: FocalPointModel = Body(...),
    session: SessionController = Depends(get_session)
):
    """Set the focal point; values are clamped to 0-100"""
    return session.set_focal_point(request.x, request.y).to_dict()


@router.post("/{session_id}/focal-point/nudge", response_model=FocalPointModel)
async def nudge_focal_point(
    request: NudgeRequest = Body(...),
    session: SessionController = Depends(get_session)
):
    """Move the focal point by keyboard steps"""
    return session.nudge_focal_point(request.dx, request.dy, request.coarse).to_dict()


@router.post("/{session_id}/focal-point/pointer", response_model=FocalPointModel, status_code=202)
async def pointer_focal_point(
    request: PointerRequest = Body(...),
    session: SessionController = Depends(get_session)
):
    """
    Report a pointer position during a drag.

    Updates are coalesced to one recomputation per frame; the response
    carries the point that will be applied.
    """
    point = point_from_pointer(request.x, request.y, request.display_width, request.display_height)
    return session.request_focal_point(point.x, point.y).to_dict()


# === Presets ===

@router.get("/{session_id}/presets", response_model=list[ResolvedPresetModel])
async def list_presets(session: SessionController = Depends(get_session)):
    return [preset.to_dict() for preset in session.get_resolved_presets()]


@router.post("/{session_id}/presets", response_model=PresetAddResponse)
async def add_preset(
    request: PresetModel = Body(...),
    session: SessionController = Depends(get_session)
):
    """
    Add a preset.

    Duplicate names are ignored (outcome "duplicate"); invalid presets are
    rejected with INVALID_PRESET.
    """
    result = session.add_preset(request.to_preset())
    if result.outcome is AddOutcome.INVALID:
        raise InvalidPresetError(result.message, details={"name": request.name})
    return {
        "outcome": result.outcome.value,
        "preset": result.preset.to_dict() if result.preset else None,
        "message": result.message
    }


@router.put("/{session_id}/presets/{name}", response_model=ResolvedPresetModel)
async def replace_preset(
    name: str,
    request: PresetModel = Body(...),
    session: SessionController = Depends(get_session)
):
    """Redefine an existing preset, keeping its position"""
    if request.name != name:
        raise ValidationError(
            "Preset name in body must match the path",
            details={"path": name, "body": request.name}
        )
    return session.replace_preset(request.to_preset()).to_dict()


@router.delete("/{session_id}/presets/{name}")
async def remove_preset(
    name: str,
    session: SessionController = Depends(get_session)
):
    """Remove a preset; the last preset cannot be removed"""
    if all(preset.name != name for preset in session.get_presets()):
        raise PresetNotFoundError(name)
    removed = session.remove_preset(name)
    return {
        "name": name,
        "removed": removed,
        "remaining": len(session.get_presets())
    }


# === Crops ===

@router.get("/{session_id}/crops", response_model=dict[str, CropRectModel])
async def get_crops(session: SessionController = Depends(get_session)):
    return {name: crop.to_dict() for name, crop in session.get_crops().items()}


@router.get("/{session_id}/crops/{name}", response_model=CropRectModel)
async def get_crop(
    name: str,
    session: SessionController = Depends(get_session)
):
    crop = session.get_crop(name)
    if crop is None:
        raise PresetNotFoundError(name)
    return crop.to_dict()


@router.get("/{session_id}/crops/{name}/image")
async def export_crop_image(
    name: str,
    format: Optional[str] = Query(None),
    quality: Optional[float] = Query(None),
    session: SessionController = Depends(get_session)
):
    """Render one crop as an image file"""
    format, quality = _export_params(format, quality)
    content = await session.export_crop(name, format, quality)
    return Response(
        content=content,
        media_type=media_type(format),
        headers={
            "Content-Disposition": _attachment(export_filenames([name], format)[0]),
            "X-Crop-Box": json.dumps(session.get_crop(name).to_dict())
        }
    )


# === Exports ===

@router.get("/{session_id}/export.json")
async def export_json(session: SessionController = Depends(get_session)):
    """Versioned snapshot of focal point, image and crops"""
    return Response(content=session.export_json(), media_type="application/json")


@router.get("/{session_id}/export.zip")
async def export_zip(
    format: Optional[str] = Query(None),
    quality: Optional[float] = Query(None),
    session: SessionController = Depends(get_session)
):
    """Every crop in one ZIP archive, in preset order"""
    format, quality = _export_params(format, quality)
    archive = await session.export_zip(format, quality)
    return StreamingResponse(
        io.BytesIO(archive),
        media_type="application/zip",
        headers={"Content-Disposition": _attachment(f"crops-{session.session_id[:8]}.zip")}
    )


@router.post("/{session_id}/export", response_model=ExportResponse)
async def export_to_container(
    request: ExportRequest = Body(...),
    session: SessionController = Depends(get_session)
):
    """Write every crop and the JSON snapshot into the session's export directory"""
    format, quality = _export_params(request.format, request.quality)
    paths = await session.export_to_container(format, quality)
    return {
        "session_id": session.session_id,
        "files": [path.name for path in paths],
        "total": len(paths)
    }


# === Events ===

@router.get("/{session_id}/events")
async def stream_events(session: SessionController = Depends(get_session)):
    """Server-sent event stream of session notifications"""

    async def event_source():
        async for event in session.events.stream():
            yield f"event: {event.type.value}\ndata: {json.dumps(event.payload)}\n\n"

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"}
    )
