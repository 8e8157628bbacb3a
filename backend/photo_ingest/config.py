from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

SUPPORTED_IMAGE_FORMATS = ("webp", "avif")


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/photo_ingest.db"

    # Base directory for stored photos; paths are computed relative to it.
    DATA_DIR: str = "./data"
    # Staging directory for raw uploads. None means the system temp dir.
    TEMP_UPLOAD_DIR: Optional[str] = None

    IMAGE_FORMAT: str = "webp"
    MAX_UPLOAD_BYTES: int = 25 * 1024 * 1024
    MAX_PIPELINE_DIMENSION: int = 1920
    WEBP_QUALITY: int = 80
    AVIF_QUALITY: int = 60
    AVIF_SPEED: int = 6

    WORKER_POLL_INTERVAL_SECONDS: float = 2.0
    AUDIT_QUEUE_SIZE: int = 1000

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

    @field_validator("IMAGE_FORMAT")
    @classmethod
    def _normalize_format(cls, value: str) -> str:
        fmt = value.strip().lower().lstrip(".")
        if not fmt:
            return "webp"
        if fmt not in SUPPORTED_IMAGE_FORMATS:
            raise ValueError(f"unsupported image format: {value}")
        return fmt

    @field_validator("MAX_UPLOAD_BYTES", "MAX_PIPELINE_DIMENSION")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("WEBP_QUALITY", "AVIF_QUALITY")
    @classmethod
    def _clamp_quality(cls, value: int) -> int:
        return max(0, min(100, value))

    @field_validator("AVIF_SPEED")
    @classmethod
    def _clamp_speed(cls, value: int) -> int:
        return max(0, min(10, value))

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, with explicit keyword overrides."""
    return Settings(**overrides)
