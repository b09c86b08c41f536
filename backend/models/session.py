"""
Crop session Pydantic models
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal, Dict, List, Union

from services.presets import CropPreset


class FocalPointModel(BaseModel):
    """Focal point, 0-100 on each axis (out-of-range values are clamped)"""
    x: float = Field(..., allow_inf_nan=False)
    y: float = Field(..., allow_inf_nan=False)


class PresetModel(BaseModel):
    """Crop preset as sent by clients"""
    name: str
    ratio: Union[float, str]  # "16:9", "16/9", "1.91" or 1.778
    label: Optional[str] = None
    color: Optional[str] = None

    def to_preset(self) -> CropPreset:
        return CropPreset(
            name=self.name,
            ratio=self.ratio,
            label=self.label,
            color=self.color
        )


class ResolvedPresetModel(BaseModel):
    name: str
    ratio: Union[float, str]
    numeric_ratio: float
    label: str
    color: str


class CropRectModel(BaseModel):
    x: int
    y: int
    width: int
    height: int


class SessionCreateRequest(BaseModel):
    """Request model for creating a crop session"""
    src: str
    focal_point: Optional[FocalPointModel] = None
    presets: Optional[List[PresetModel]] = None
    layout: Optional[Literal["grid", "single"]] = None
    theme: Optional[Literal["light", "dark"]] = None
    show_overlay: Optional[bool] = None
    show_dimensions: Optional[bool] = None


class SessionUpdateRequest(BaseModel):
    """Partial configuration update; omitted fields are left alone"""
    src: Optional[str] = None
    focal_point: Optional[FocalPointModel] = None
    layout: Optional[Literal["grid", "single"]] = None
    theme: Optional[Literal["light", "dark"]] = None
    show_overlay: Optional[bool] = None
    show_dimensions: Optional[bool] = None


class SrcRequest(BaseModel):
    src: str


class NudgeRequest(BaseModel):
    """Keyboard-style move: dx/dy in steps of 1 point (5 when coarse)"""
    dx: int = Field(0, ge=-100, le=100)
    dy: int = Field(0, ge=-100, le=100)
    coarse: bool = False


class PointerRequest(BaseModel):
    """Pointer position over the displayed image, in display pixels"""
    x: float = Field(..., allow_inf_nan=False)
    y: float = Field(..., allow_inf_nan=False)
    display_width: float = Field(..., gt=0)
    display_height: float = Field(..., gt=0)


class ImageInfo(BaseModel):
    width: int
    height: int


class ErrorInfo(BaseModel):
    code: str
    message: str


class SessionResponse(BaseModel):
    """Session state snapshot"""
    session_id: str
    status: Literal["uninitialized", "loading", "ready", "failed", "destroyed"]
    src: str
    image: Optional[ImageInfo] = None
    focal_point: FocalPointModel
    presets: List[ResolvedPresetModel]
    crops: Dict[str, CropRectModel]
    layout: str
    theme: str
    show_overlay: bool
    show_dimensions: bool
    error: Optional[ErrorInfo] = None


class PresetAddResponse(BaseModel):
    outcome: Literal["added", "duplicate"]
    preset: Optional[ResolvedPresetModel] = None
    message: Optional[str] = None


class ExportRequest(BaseModel):
    """Request model for writing exports into the session container"""
    format: Literal["png", "jpeg", "webp"] = "png"
    quality: Optional[float] = Field(None, gt=0, le=1)


class ExportResponse(BaseModel):
    session_id: str
    files: List[str]
    total: int
