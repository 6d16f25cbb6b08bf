"""Render pipeline for Mermaid diagram descriptions.

This module provides:
- RenderPipeline: Session binding, rendering, extraction and conversion
- RenderRequest: Validated, normalized request input
- RenderResult: Final bytes plus how they were produced
- PipelineConfig: Per-request time bounds

Example usage:
    from core.render import RenderPipeline

    pipeline = RenderPipeline.from_env()
    await pipeline.warm_up()

    result = await pipeline.render("graph TD\\n  A --> B", "png")
    print(f"{result.content_type}: {len(result.data)} bytes via {result.strategy}")

    await pipeline.shutdown()
"""

from .pipeline import RenderPipeline
from .types import PipelineConfig, RenderRequest, RenderResult, RenderStage, RenderTrace

__all__ = [
    # Types
    "PipelineConfig",
    "RenderRequest",
    "RenderResult",
    "RenderStage",
    "RenderTrace",
    # Pipeline
    "RenderPipeline",
]
