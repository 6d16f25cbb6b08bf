"""Conversion chain configuration."""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ConversionConfig:
    """Raster and document conversion settings."""

    # Raster output
    raster_density: int = 300
    rasterizer_path: Optional[str] = None

    # Per-strategy time bounds (seconds)
    external_timeout: float = 10.0
    in_process_timeout: float = 5.0
    screenshot_timeout: float = 15.0

    # Slow diagram kinds
    slow_timeout_factor: float = 2.0
    stabilize_timeout: float = 8.0
    stabilize_interval: float = 0.1
    stabilize_delay: float = 0.5

    # Geometry
    default_width: int = 1200
    default_height: int = 800
    min_raster_size: int = 100
    clip_margin: int = 20
    max_clip_size: int = 5000
    clip_settle_delay: float = 0.5

    # Document output
    pdf_format: str = "A4"
    pdf_margin: str = "20px"

    @classmethod
    def from_env(cls) -> "ConversionConfig":
        """Load configuration from environment variables."""
        return cls(
            raster_density=int(os.getenv("RASTER_DENSITY", "300")),
            rasterizer_path=os.getenv("RASTERIZER_PATH") or None,
            external_timeout=float(os.getenv("EXTERNAL_RASTER_TIMEOUT", "10")),
            in_process_timeout=float(os.getenv("IN_PROCESS_RASTER_TIMEOUT", "5")),
            screenshot_timeout=float(os.getenv("SCREENSHOT_TIMEOUT", "15")),
            slow_timeout_factor=float(os.getenv("SLOW_TIMEOUT_FACTOR", "2")),
            stabilize_timeout=float(os.getenv("STABILIZE_TIMEOUT", "8")),
            stabilize_delay=float(os.getenv("STABILIZE_DELAY", "0.5")),
            default_width=int(os.getenv("DEFAULT_WIDTH", "1200")),
            default_height=int(os.getenv("DEFAULT_HEIGHT", "800")),
            min_raster_size=int(os.getenv("MIN_RASTER_SIZE", "100")),
            clip_margin=int(os.getenv("CLIP_MARGIN", "20")),
            max_clip_size=int(os.getenv("MAX_CLIP_SIZE", "5000")),
            pdf_format=os.getenv("PDF_FORMAT", "A4"),
            pdf_margin=os.getenv("PDF_MARGIN", "20px"),
        )

    def validate(self) -> None:
        """Raise ValueError when a setting is out of range."""
        if self.raster_density <= 0:
            raise ValueError("raster_density must be positive")
        if self.slow_timeout_factor < 1:
            raise ValueError("slow_timeout_factor must be at least 1")
        for name in ("external_timeout", "in_process_timeout", "screenshot_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    def scaled(self, timeout: float, slow: bool) -> float:
        """Stretch a timeout for slow diagram kinds."""
        return timeout * self.slow_timeout_factor if slow else timeout
