"""Data types for the render pipeline."""

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from core.convert.types import ConversionOutcome, DiagramProfile, OutputFormat, profile_for
from core.engine.config import env_bool
from core.exceptions import InvalidRequest


@dataclass
class PipelineConfig:
    """Per-request time bounds and fresh-session behaviour."""

    pooled_render_timeout: float = 6.0
    fresh_render_timeout: float = 8.0
    render_poll_interval: float = 0.05
    fresh_load_timeout: float = 10.0
    block_resources: bool = True
    request_deadline: float = 60.0

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Load configuration from environment variables."""
        return cls(
            pooled_render_timeout=float(os.getenv("POOLED_RENDER_TIMEOUT", "6")),
            fresh_render_timeout=float(os.getenv("FRESH_RENDER_TIMEOUT", "8")),
            render_poll_interval=float(os.getenv("RENDER_POLL_INTERVAL", "0.05")),
            fresh_load_timeout=float(os.getenv("FRESH_LOAD_TIMEOUT", "10")),
            block_resources=env_bool("BLOCK_RESOURCES", True),
            request_deadline=float(os.getenv("REQUEST_DEADLINE", "60")),
        )

    def validate(self) -> None:
        """Raise ValueError when a setting is out of range."""
        for name in (
            "pooled_render_timeout",
            "fresh_render_timeout",
            "render_poll_interval",
            "fresh_load_timeout",
            "request_deadline",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    def render_timeout(self, pooled: bool) -> float:
        return self.pooled_render_timeout if pooled else self.fresh_render_timeout


class RenderStage(str, Enum):
    """Pipeline states, in order."""

    INIT = "init"
    SESSION_BOUND = "session_bound"
    RENDERED = "rendered"
    EXTRACTED = "extracted"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RenderRequest:
    """A validated, normalized render request."""

    description: str
    output_format: OutputFormat
    profile: DiagramProfile = field(default_factory=DiagramProfile)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    @classmethod
    def create(cls, description, output_format="svg") -> "RenderRequest":
        """
        Validate and normalize raw request input.

        Args:
            description: Mermaid diagram source
            output_format: svg, png, pdf or one of their aliases

        Returns:
            RenderRequest with a trailing newline on the description

        Raises:
            InvalidRequest: If the description is blank or the format unknown
        """
        if not isinstance(description, str) or not description.strip():
            raise InvalidRequest("Diagram description must be a non-empty string")

        try:
            fmt = OutputFormat.parse(output_format)
        except ValueError as e:
            raise InvalidRequest(str(e))

        if not description.endswith("\n"):
            description += "\n"

        return cls(
            description=description,
            output_format=fmt,
            profile=profile_for(description),
        )


@dataclass
class RenderTrace:
    """Stage transitions of one request, for logging."""

    request_id: str
    stage: RenderStage = RenderStage.INIT
    transitions: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    error: Optional[str] = None

    def advance(self, stage: RenderStage) -> None:
        self.stage = stage
        elapsed = (datetime.now() - self.started_at).total_seconds() * 1000
        self.transitions.append(f"{stage.value}@{elapsed:.0f}ms")

    def fail(self, error: BaseException) -> None:
        self.error = f"{type(error).__name__}: {error}"
        self.advance(RenderStage.FAILED)

    def summary(self) -> str:
        path = " -> ".join(self.transitions) or RenderStage.INIT.value
        if self.error:
            return f"[{self.request_id}] {path} ({self.error})"
        return f"[{self.request_id}] {path}"


@dataclass
class RenderResult:
    """Final bytes of a request plus how they were produced."""

    outcome: ConversionOutcome
    request_id: str
    pooled: bool
    session_handle: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def data(self) -> bytes:
        return self.outcome.data

    @property
    def content_type(self) -> str:
        return self.outcome.content_type

    @property
    def strategy(self) -> str:
        return self.outcome.strategy

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "request_id": self.request_id,
            "pooled": self.pooled,
            "session": self.session_handle,
            "duration_ms": round(self.duration_ms, 1),
            **self.outcome.to_dict(),
        }
