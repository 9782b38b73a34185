"""
Service configuration using Pydantic Settings

Centralised configuration for the HTTP service, read from environment variables
(or a .env file) and validated by Pydantic.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .processing_config import CLAHEParams, ContrastStage, PipelineSettings


class Settings(BaseSettings):
    """Service settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Info
    app_name: str = Field(default="Frame Enhancer")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    api_v1_prefix: str = Field(default="/api/v1")

    # Upload limits
    max_image_size_mb: int = Field(default=10)

    # Default stage toggles for the shared pipeline
    enable_preprocessing: bool = Field(default=True)
    enable_denoise: bool = Field(default=True)
    enable_shadow_correction: bool = Field(default=True)
    enable_brightness_norm: bool = Field(default=True)
    contrast_stage: ContrastStage = Field(default=ContrastStage.CLAHE)
    enable_motion_blur_comp: bool = Field(default=False)

    # CLAHE parameters
    clahe_tiles_per_axis: int = Field(default=8, ge=1)
    clahe_clip_limit: float = Field(default=2.5, gt=0)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    log_max_size_mb: int = Field(default=10)
    log_backup_count: int = Field(default=5)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {', '.join(allowed)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"Log level must be one of: {', '.join(allowed)}")
        return v

    @property
    def max_image_size_bytes(self) -> int:
        return self.max_image_size_mb * 1024 * 1024

    def default_pipeline_settings(self) -> PipelineSettings:
        """Stage toggles the service starts with"""
        return PipelineSettings(
            enabled=self.enable_preprocessing,
            denoise=self.enable_denoise,
            shadow_correction=self.enable_shadow_correction,
            brightness_norm=self.enable_brightness_norm,
            contrast=self.contrast_stage,
            motion_blur_comp=self.enable_motion_blur_comp,
        )

    def clahe_params(self) -> CLAHEParams:
        return CLAHEParams(self.clahe_tiles_per_axis, self.clahe_clip_limit)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance

    Returns:
        Settings: Service settings singleton
    """
    return Settings()


def get_log_config(settings: Optional[Settings] = None) -> dict:
    """Get logging configuration dict"""
    settings = settings or get_settings()
    return {
        "log_level": settings.log_level,
        "format_string": settings.log_format,
        "log_file": settings.log_file,
        "max_file_size": settings.log_max_size_mb * 1024 * 1024,
        "backup_count": settings.log_backup_count,
    }
