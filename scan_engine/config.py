import os
from pydantic import BaseModel, ConfigDict, Field

class ScanSettings(BaseModel):
    """Engine configuration, read from the environment by load_settings()."""

    model_config = ConfigDict(frozen=True)

    max_workers: int = Field(default=4, ge=1, description="Checks evaluated in parallel")
    check_timeout: float = Field(default=30.0, gt=0, description="Seconds allowed per inspection command")
    log_level: str = "INFO"

def load_settings() -> ScanSettings:
    return ScanSettings(
        max_workers=os.getenv("SCAN_ENGINE_MAX_WORKERS", "4"),
        check_timeout=os.getenv("SCAN_ENGINE_CHECK_TIMEOUT", "30"),
        log_level=os.getenv("SCAN_ENGINE_LOG_LEVEL", "INFO").upper(),
    )
