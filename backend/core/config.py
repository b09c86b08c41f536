"""
Application configuration management
"""

from pathlib import Path
from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """FocalCrop settings, read from the environment and .env"""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # API
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "FocalCrop"
    VERSION: str = "0.1.0"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Source images
    MAX_UPLOAD_SIZE: int = 50 * 1024 * 1024  # 50MB
    ALLOWED_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png", ".webp", ".gif"]
    UPLOAD_DIR: str = "./uploads"
    IMAGE_LOAD_TIMEOUT: float = 30.0  # seconds

    # Sessions; each session exports into OUTPUT_DIR/<session id>
    OUTPUT_DIR: str = "./outputs"
    MAX_SESSIONS: int = 100
    FRAME_INTERVAL_MS: int = 16  # one display refresh at ~60Hz

    # Crop export
    DEFAULT_EXPORT_FORMAT: Literal["png", "jpeg", "webp"] = "png"
    DEFAULT_EXPORT_QUALITY: float = 0.92  # 0-1, ignored for PNG

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("ALLOWED_EXTENSIONS", mode="before")
    @classmethod
    def parse_allowed_extensions(cls, v):
        if isinstance(v, str):
            v = v.split(",")
        # Accept "png" as well as ".png"
        return [ext if ext.startswith(".") else f".{ext}" for ext in (e.strip().lower() for e in v)]

    @field_validator("MAX_SESSIONS", "FRAME_INTERVAL_MS", "MAX_UPLOAD_SIZE")
    @classmethod
    def check_positive(cls, v, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("IMAGE_LOAD_TIMEOUT")
    @classmethod
    def check_timeout(cls, v):
        if v <= 0:
            raise ValueError("IMAGE_LOAD_TIMEOUT must be positive")
        return v

    @field_validator("DEFAULT_EXPORT_QUALITY")
    @classmethod
    def check_export_quality(cls, v):
        if not 0 < v <= 1:
            raise ValueError("DEFAULT_EXPORT_QUALITY must be in (0, 1]")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @property
    def upload_path(self) -> Path:
        return Path(self.UPLOAD_DIR)

    @property
    def output_path(self) -> Path:
        return Path(self.OUTPUT_DIR)


# Create settings instance
settings = Settings()
