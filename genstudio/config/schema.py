# genstudio/config/schema.py
"""
Pydantic configuration models for genstudio.

All models use extra="ignore" to allow unknown YAML keys without crashing.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ApiConfig(BaseModel):
    """Backend API connection settings."""

    model_config = ConfigDict(extra="ignore")

    base_url: str = Field(
        default="http://localhost:8000/api/v1", description="Backend API base URL"
    )
    token: str | None = Field(
        default=None, description="Bearer token for the logged-in member (None = anonymous)"
    )
    timeout: float = Field(
        default=10.0, gt=0, description="Timeout in seconds for ordinary API calls"
    )
    connect_timeout: float = Field(
        default=10.0, gt=0, description="Connect timeout in seconds for every call"
    )
    save_timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for the save/publish call"
    )


class SelfieConfig(BaseModel):
    """Selfie studio settings."""

    model_config = ConfigDict(extra="ignore")

    generate_path: str = Field(default="/ai-studio/selfie/generate")
    quota_path: str = Field(default="/ai-studio/selfie/quota")
    history_path: str = Field(default="/ai-studio/selfie/history")
    download_path: str = Field(
        default="/ai-studio/selfie/{id}/download", description="Clean download path template"
    )
    upload_field: str = Field(default="selfie", description="Multipart field name for the image")
    generation_timeout: float = Field(
        default=120.0, gt=0, description="Read timeout in seconds for the generation call"
    )
    max_size_mb: int = Field(default=10, ge=1, description="Maximum selfie size in MB")
    fallback_limit: int = Field(
        default=10, ge=0, description="Quota assumed when the quota fetch fails (fail-open)"
    )
    allowed_types: list[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/png", "image/webp", "image/heic"],
        description="Accepted image content types",
    )
    stage_labels: list[str] = Field(
        default_factory=lambda: [
            "Uploading your selfie",
            "Analysing your face",
            "Matching the lighting",
            "Blending you into the scene",
            "Adding final touches",
            "Almost ready",
        ],
        description="Perceived-progress stage labels (first is the upload stage)",
    )
    stage_schedule: list[float] = Field(
        default_factory=lambda: [3.0, 9.0, 19.0, 35.0],
        description="Seconds after upload completion at which stages 2.. are shown",
    )
    upload_chunk_size: int = Field(
        default=64 * 1024, ge=1024, description="Bytes per upload chunk (progress granularity)"
    )


class StoryConfig(BaseModel):
    """Story generator settings."""

    model_config = ConfigDict(extra="ignore")

    generate_path: str = Field(default="/stories/generate")
    quota_path: str = Field(default="/stories/stats")
    save_path: str = Field(default="/stories")
    generation_timeout: float = Field(
        default=600.0, gt=0, description="Read timeout in seconds (generation takes 2-7 minutes)"
    )
    tick_interval: float = Field(
        default=0.5, gt=0, description="Seconds between simulated progress updates"
    )
    base_times: dict[str, int] = Field(
        default_factory=lambda: {"short": 120, "medium": 240, "long": 420},
        description="Estimated generation seconds by story length",
    )
    image_overhead: int = Field(
        default=60, ge=0, description="Extra seconds when images are requested"
    )
    progress_cap: int = Field(
        default=95, ge=1, le=99, description="Simulated percentage never exceeds this"
    )
    fallback_limit: int = Field(
        default=10, ge=0, description="Quota assumed when the quota fetch fails (fail-open)"
    )


class OutputConfig(BaseModel):
    """Output and logging configuration."""

    model_config = ConfigDict(extra="ignore")

    downloads_dir: str = Field(
        default="genstudio-downloads", description="Directory for clean selfie downloads"
    )
    verbosity: Literal["quiet", "normal", "verbose"] = Field(
        default="normal", description="Logging verbosity level"
    )


class StudioConfig(BaseModel):
    """Root configuration for genstudio."""

    model_config = ConfigDict(extra="ignore")

    api: ApiConfig = Field(default_factory=ApiConfig)
    selfie: SelfieConfig = Field(default_factory=SelfieConfig)
    story: StoryConfig = Field(default_factory=StoryConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
