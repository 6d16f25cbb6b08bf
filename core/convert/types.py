"""Data types for the conversion chain."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from core.engine.session import RenderSession


class OutputFormat(str, Enum):
    """Final byte formats a request can ask for."""

    SVG = "svg"
    PNG = "png"
    PDF = "pdf"

    @property
    def content_type(self) -> str:
        return {
            OutputFormat.SVG: "image/svg+xml",
            OutputFormat.PNG: "image/png",
            OutputFormat.PDF: "application/pdf",
        }[self]

    @classmethod
    def parse(cls, value) -> "OutputFormat":
        """Accept a format name or one of its aliases (vector, raster, document)."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Format must be a string, got {type(value).__name__}")

        normalized = value.strip().lower()
        normalized = FORMAT_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(f.value for f in cls)
            raise ValueError(f"Invalid format '{value}', expected one of: {valid}")


FORMAT_ALIASES = {
    "vector": "svg",
    "raster": "png",
    "image": "png",
    "document": "pdf",
}

# Tree/radial diagrams: slow layout, deep irregular nesting, malformed output from run()
SLOW_KINDS = frozenset({"mindmap"})
DIRECT_RENDER_KINDS = frozenset({"mindmap"})
REPAIR_KINDS = frozenset({"mindmap"})


@dataclass(frozen=True)
class DiagramProfile:
    """How a diagram kind should be rendered and converted."""

    kind: str = "unknown"
    slow: bool = False
    direct_render: bool = False
    needs_repair: bool = False


def detect_diagram_kind(description: str) -> str:
    """
    Return the lower-cased diagram keyword of a description.

    Front-matter blocks and ``%%`` comment or directive lines are skipped.
    """
    in_front_matter = False
    first = True
    for raw in description.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line == "---" and (first or in_front_matter):
            in_front_matter = not in_front_matter
            first = False
            continue
        first = False
        if in_front_matter or line.startswith("%%"):
            continue
        token = line.split()[0].rstrip(";:")
        return token.lower() or "unknown"
    return "unknown"


def profile_for(description: str) -> DiagramProfile:
    kind = detect_diagram_kind(description)
    return DiagramProfile(
        kind=kind,
        slow=kind in SLOW_KINDS,
        direct_render=kind in DIRECT_RENDER_KINDS,
        needs_repair=kind in REPAIR_KINDS,
    )


@dataclass
class ConversionContext:
    """Everything a strategy may need to produce the final bytes."""

    markup: str
    output_format: OutputFormat
    profile: DiagramProfile = field(default_factory=DiagramProfile)
    session: Optional[RenderSession] = None
    request_id: str = ""

    @property
    def has_live_session(self) -> bool:
        return self.session is not None and not self.session.is_closed


@dataclass
class StrategyAttempt:
    """One strategy's attempt within a chain run."""

    name: str
    status: str  # "ok", "failed", "timeout", "unavailable", "invalid"
    error: Optional[str] = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 1),
        }


@dataclass
class ConversionOutcome:
    """Final bytes and how they were produced."""

    data: bytes
    output_format: OutputFormat
    strategy: str
    attempts: List[StrategyAttempt] = field(default_factory=list)

    @property
    def content_type(self) -> str:
        return self.output_format.content_type

    def to_dict(self) -> dict:
        return {
            "format": self.output_format.value,
            "content_type": self.content_type,
            "strategy": self.strategy,
            "size": len(self.data),
            "attempts": [a.to_dict() for a in self.attempts],
        }
