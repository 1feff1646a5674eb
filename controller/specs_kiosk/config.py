"""Central configuration for the smart-specs kiosk controller."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


# ============================================================
# Nested Configuration Classes
# ============================================================

class CameraSettings(BaseModel):
    """Camera capture configuration."""
    camera_id: int = Field(0, description="OpenCV device index")
    resolution_width: int = Field(640, description="Camera stream width (pixels)")
    resolution_height: int = Field(480, description="Camera stream height (pixels)")
    fps: int = Field(30, description="Nominal capture frame rate")
    preview_target: str = Field("camera-preview", description="Camera preview surface identifier")
    preview_queue_size: int = Field(2, description="Max buffered preview JPEG frames")


class PresenceSettings(BaseModel):
    """Face presence detection and debounce configuration."""
    min_confidence: float = Field(0.5, description="MediaPipe face detection confidence threshold (0-1)")
    model_selection: int = Field(0, description="MediaPipe model: 0 = short range, 1 = full range")
    absent_frame_threshold: int = Field(30, description="Absent frames tolerated before declaring departure")
    very_close_threshold: float = Field(0.4, description="Face size above which the customer is very close")
    close_threshold: float = Field(0.3, description="Face size above which the customer is close")
    medium_threshold: float = Field(0.2, description="Face size above which the customer is at medium range")
    fallback_start_delay_s: Optional[float] = Field(
        None, description="Auto-start delay when the face model is unavailable (None disables)"
    )

    @field_validator("very_close_threshold", "close_threshold", "medium_threshold")
    @classmethod
    def _check_threshold(cls, value: float) -> float:
        if not 0.0 <= value <= 2.0:
            raise ValueError("face size thresholds must lie within 0..2")
        return value


class SessionSettings(BaseModel):
    """Remote avatar session behaviour."""
    video_target: str = Field("persona-video", description="Video surface the avatar streams into")
    teardown_grace_s: float = Field(2.0, description="Grace period for an in-flight bootstrap on teardown")
    listening_indicator_s: float = Field(2.0, description="How long the UI shows the listening indicator")
    intro_text: str = Field(
        "Hi there! I'm your smart laptop assistant.\n"
        "You can ask me questions like:\n"
        "\"What processor is this?\",\n"
        "\"How much RAM is there?\",\n"
        "\"Is this good for gaming or video editing?\"\n"
        "Just speak normally, and I'll answer for this exact laptop on the table.",
        description="Scripted utterance spoken once the session is ready",
    )


class ProductSpecs(BaseModel):
    """Specification sheet of the product on display."""
    model: str = "HP Pavilion 15"
    cpu: str = "Intel Core i5 12450H"
    ram_gb: int = 16
    storage: str = "512GB NVMe SSD"
    gpu: str = "NVIDIA GTX 1650 4GB"
    os: str = "Windows 11 Home"


class PersonaSettings(BaseModel):
    """Identity of the conversational avatar."""
    name: str = Field("Ava", description="Display name of the assistant")
    avatar_id: str = Field("30fa96d0-26c4-4e55-94a0-517025942e18", description="Avatar identity")
    voice_id: str = Field("91627ebb-7530-4235-bbf2-8c12af2e601c", description="Voice identity")
    llm_id: str = Field("ANAM_GPT_4O_MINI_V1", description="Language model identity")
    specs: ProductSpecs = Field(default_factory=ProductSpecs, description="Product specification sheet")


class Settings(BaseSettings):
    """Environment-driven settings for controller subsystems."""

    # Avatar vendor API
    avatar_api_key: str = Field(..., description="Bearer credential used to mint avatar session tokens")
    avatar_api_url: str = Field("https://api.anam.ai/v1", description="Avatar REST base URL")
    avatar_ws_url: str = Field("wss://api.anam.ai/v1/stream", description="Avatar streaming WebSocket URL")
    auth_timeout_s: float = Field(15.0, description="Timeout for the session token request")

    # Controller HTTP Server
    controller_host: str = Field("0.0.0.0", description="Host interface for local FastAPI server")
    controller_port: int = Field(5000, description="Port for FastAPI server")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")

    # Nested Configuration Objects
    camera: CameraSettings = Field(default_factory=CameraSettings, description="Camera hardware settings")
    presence: PresenceSettings = Field(default_factory=PresenceSettings, description="Presence detection settings")
    session: SessionSettings = Field(default_factory=SessionSettings, description="Avatar session settings")
    persona: PersonaSettings = Field(default_factory=PersonaSettings, description="Avatar persona")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
