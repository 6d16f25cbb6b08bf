"""Browser engine and session pool configuration."""

import os
from dataclasses import dataclass
from typing import Optional


def env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """Engine and session pool configuration."""

    # Browser executable override (None = discover)
    executable_path: Optional[str] = None
    launch_timeout: float = 60.0

    # Pool
    pool_max_size: int = 5
    verify_on_release: bool = True

    # Render surface
    viewport_width: int = 1200
    viewport_height: int = 800

    # Base document loading and renderer readiness
    document_load_timeout: float = 15.0
    ready_poll_interval: float = 0.05
    ready_poll_attempts: int = 100

    # Mermaid runtime
    mermaid_script_path: Optional[str] = None
    mermaid_cdn_url: str = "https://cdn.jsdelivr.net/npm/mermaid@11/dist/mermaid.min.js"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        return cls(
            executable_path=(
                os.getenv("RENDER_ENGINE_PATH") or os.getenv("PUPPETEER_EXECUTABLE_PATH") or None
            ),
            launch_timeout=float(os.getenv("ENGINE_LAUNCH_TIMEOUT", "60")),
            pool_max_size=int(os.getenv("POOL_MAX_SIZE", "5")),
            verify_on_release=env_bool("VERIFY_ON_RELEASE", True),
            viewport_width=int(os.getenv("VIEWPORT_WIDTH", "1200")),
            viewport_height=int(os.getenv("VIEWPORT_HEIGHT", "800")),
            document_load_timeout=float(os.getenv("DOCUMENT_LOAD_TIMEOUT", "15")),
            ready_poll_interval=float(os.getenv("READY_POLL_INTERVAL", "0.05")),
            ready_poll_attempts=int(os.getenv("READY_POLL_ATTEMPTS", "100")),
            mermaid_script_path=os.getenv("MERMAID_SCRIPT_PATH") or None,
            mermaid_cdn_url=os.getenv(
                "MERMAID_CDN_URL",
                "https://cdn.jsdelivr.net/npm/mermaid@11/dist/mermaid.min.js",
            ),
        )

    def validate(self) -> None:
        """Raise ValueError when a setting is out of range."""
        if self.pool_max_size < 1:
            raise ValueError("pool_max_size must be at least 1")
        if self.viewport_width <= 0 or self.viewport_height <= 0:
            raise ValueError("Viewport dimensions must be positive")
        if self.ready_poll_attempts < 1:
            raise ValueError("ready_poll_attempts must be at least 1")
        for name in ("launch_timeout", "document_load_timeout", "ready_poll_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def viewport(self) -> dict:
        """Viewport size in the shape Playwright expects."""
        return {"width": self.viewport_width, "height": self.viewport_height}
