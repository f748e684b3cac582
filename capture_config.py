"""
Centralized Configuration for Evidence Stitcher

Three layers:
- CaptureDelays: timing constants for the capture loop (milliseconds)
- CaptureConfig: per-capture options, accepted from API clients
- AppDefaults: service settings, overridable via environment variables
"""

import os
from dataclasses import dataclass, fields
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class CaptureDelays:
    """Delays and retry settings used between page interactions (ms)"""

    # ==========================================================================
    # Capture Loop
    # ==========================================================================
    min_between_captures: int = 600  # Host capture primitive is rate limited
    render_after_scroll: int = 800
    infinite_scroll_extra_delay: int = 1500
    smooth_scroll_settle: int = 500
    lazy_images_timeout: int = 8000  # Base value, adapted to connection speed

    # ==========================================================================
    # Retries
    # ==========================================================================
    max_capture_retries: int = 3  # Total attempts per tile
    capture_retry_delay: int = 1000

    # ==========================================================================
    # Stability
    # ==========================================================================
    stability_check_interval: int = 500
    stability_checks_required: int = 3
    max_stability_wait: int = 5000

    # ==========================================================================
    # Infinite Scroll Detection
    # ==========================================================================
    detection_steps: int = 5
    detection_step_pause: int = 300
    detection_settle: int = 3000

    @classmethod
    def immediate(cls) -> "CaptureDelays":
        """All waits zeroed, retries kept. Used by tests and dry runs."""
        zeroed = {
            f.name: 0
            for f in fields(cls)
            if f.name not in ("max_capture_retries", "stability_checks_required", "detection_steps")
        }
        return cls(**zeroed)


class CaptureConfig(BaseModel):
    """Options recognised by a single capture"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page_load_timeout: int = Field(60000, ge=0)  # ms
    viewport_timeout: int = Field(30000, gt=0)  # ms, per provider call
    hash_timeout: int = Field(5000, gt=0)  # ms
    format: Literal["png", "jpeg", "webp"] = "png"  # png is lossless, needed for integrity
    quality: int = Field(100, ge=1, le=100)  # jpeg/webp only

    max_height_before_split: int = Field(50000, gt=0)  # Warn above this (px)
    max_capture_height: int = Field(120000, gt=0)
    infinite_scroll_max_height: int = Field(60000, gt=0)
    infinite_scroll_detection_viewports: int = Field(5, ge=1)
    infinite_scroll_growth_threshold: float = Field(0.15, ge=0)
    max_capture_time_ms: int = Field(300000, gt=0)  # 5 minutes
    max_capture_time_ms_infinite_scroll: int = Field(600000, gt=0)  # 10 minutes

    collect_html: bool = True
    collect_metadata: bool = True
    hide_overlays: bool = False  # Hide cookie banners/widgets instead of re-anchoring

    delays: CaptureDelays = Field(default_factory=CaptureDelays)


@dataclass
class AppDefaults:
    """Service-wide default configuration"""

    # ==========================================================================
    # Server Settings
    # ==========================================================================
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 3000

    # ==========================================================================
    # Browser Settings
    # ==========================================================================
    BROWSER_HEADLESS: bool = True
    VIEWPORT_WIDTH: int = 1280
    VIEWPORT_HEIGHT: int = 800
    DEVICE_SCALE_FACTOR: float = 1.0
    NAVIGATION_TIMEOUT: int = 60000  # ms

    @classmethod
    def from_env(cls) -> "AppDefaults":
        """Create config from environment variables with defaults."""
        return cls(
            SERVER_HOST=os.getenv("SERVER_HOST", cls.SERVER_HOST),
            SERVER_PORT=int(os.getenv("SERVER_PORT", cls.SERVER_PORT)),
            BROWSER_HEADLESS=os.getenv("BROWSER_HEADLESS", str(cls.BROWSER_HEADLESS)).lower() in ("1", "true", "yes"),
            VIEWPORT_WIDTH=int(os.getenv("VIEWPORT_WIDTH", cls.VIEWPORT_WIDTH)),
            VIEWPORT_HEIGHT=int(os.getenv("VIEWPORT_HEIGHT", cls.VIEWPORT_HEIGHT)),
            DEVICE_SCALE_FACTOR=float(os.getenv("DEVICE_SCALE_FACTOR", cls.DEVICE_SCALE_FACTOR)),
            NAVIGATION_TIMEOUT=int(os.getenv("NAVIGATION_TIMEOUT", cls.NAVIGATION_TIMEOUT)),
        )


# Global defaults instance - can be overridden at runtime
Defaults = AppDefaults()


def load_defaults_from_env():
    """Reload defaults from environment variables."""
    global Defaults
    Defaults = AppDefaults.from_env()
    return Defaults
