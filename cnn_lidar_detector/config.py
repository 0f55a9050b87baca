"""
Configuration loader for the CNN LiDAR detector service.

Environment variables are centralized here to keep the rest of the code
focused on inference and to make operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Network
    detector_model_path: Path
    detector_use_gpu: bool = True
    detector_gpu_id: int = Field(0, ge=0)
    score_threshold: float = 0.5

    # Input geometry expected by the network (width x height of the projection)
    input_width: int = Field(512, gt=0)
    input_height: int = Field(64, gt=0)

    # Cloudflare R2 / S3-compatible storage
    r2_endpoint: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: Optional[str] = None
    r2_public_base_url: Optional[str] = None

    # API
    request_timeout_seconds: int = 30
    log_level: str = "INFO"

    # Debugging
    debug: bool = False
    debug_output_dir: Path = Path("/tmp/lidar_detector_debug")

    @field_validator("score_threshold")
    @classmethod
    def validate_score_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("SCORE_THRESHOLD must be within [0, 1]")
        return v

    @property
    def input_size(self) -> Tuple[int, int]:
        """Network input geometry as (width, height), the order cv2 uses."""
        return self.input_width, self.input_height


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()
