"""
Health check route: liveness for deployment monitors, plus the comparison
defaults the service is running with.
"""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from core.comparison_config import ComparisonConfig
from core.config import get_settings
from core.errors import ConfigError

router = APIRouter(prefix="/api/v1", tags=["Health"])

SERVICE_VERSION = "0.1.0"


@router.get("/health")
def health() -> Dict[str, Any]:
    """
    - always returns ok=True if the API is alive
    - config_ok=False when the configured tolerances would be rejected
    """
    s = get_settings()

    try:
        ComparisonConfig.from_settings(s)
        config_ok, config_error = True, None
    except ConfigError as e:
        config_ok, config_error = False, str(e)

    body: Dict[str, Any] = {
        "ok": True,
        "env": s.app_env,
        "version": SERVICE_VERSION,
        "defaults": {
            "timing_tolerance_sec": s.timing_tolerance_sec,
            "pitch_tolerance_semitones": s.pitch_tolerance_semitones,
            "velocity_tolerance": s.velocity_tolerance,
            "density_window_sec": s.density_window_sec,
            "polyphony_window_sec": s.polyphony_window_sec,
            "max_upload_size_mb": s.max_upload_size_mb,
        },
        "checks": {"config_ok": config_ok},
    }
    if config_error:
        body["checks"]["config_error"] = config_error
    return body
