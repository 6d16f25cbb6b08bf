"""Diagram generation routes."""

import logging
import time
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from pydantic import AliasChoices, BaseModel, Field, field_validator

from core.exceptions import RenderException
from core.render import RenderPipeline

logger = logging.getLogger(__name__)

router = APIRouter()

# HTTP status per error kind; anything unlisted is a 500
ERROR_STATUS = {
    "invalid_request": 400,
    "render_failed": 422,
    "engine_unavailable": 503,
    "not_rendered": 504,
    "deadline_exceeded": 504,
    "conversion_failed": 500,
}


class GenerateRequest(BaseModel):
    """Diagram generation request."""

    description: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("description", "code"),
    )
    format: str = "svg"

    @field_validator("format")
    @classmethod
    def format_must_be_named(cls, v: str) -> str:
        """Validate that a format name was given."""
        if not v.strip():
            raise ValueError("Format must not be empty")
        return v.strip().lower()


# Shared render pipeline (lazy loading)
_pipeline: Optional[RenderPipeline] = None


def get_pipeline() -> RenderPipeline:
    """Get or create the render pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = RenderPipeline.from_env()
    return _pipeline


def set_pipeline(pipeline: Optional[RenderPipeline]) -> None:
    """Replace the shared pipeline (application startup and tests)."""
    global _pipeline
    _pipeline = pipeline


def error_response(error_type: str, message: str, started: float) -> JSONResponse:
    """JSON error body with the status for its kind."""
    return JSONResponse(
        status_code=ERROR_STATUS.get(error_type, 500),
        content={
            "error": message,
            "error_type": error_type,
            "duration": f"{_elapsed_ms(started)}ms",
        },
    )


@router.post("/generate")
async def generate_diagram(request: GenerateRequest):
    """Render a Mermaid description to SVG, PNG or PDF."""
    started = time.perf_counter()

    try:
        result = await get_pipeline().render(request.description, request.format)
    except RenderException as e:
        logger.error(f"Diagram generation failed ({e.error_type}): {e}")
        return error_response(e.error_type, str(e), started)
    except Exception as e:
        logger.exception(f"Unexpected diagram generation error: {e}")
        return error_response("internal_error", str(e), started)

    return Response(
        content=result.data,
        media_type=result.content_type,
        headers={
            "X-Response-Time": f"{_elapsed_ms(started)}ms",
            "X-Render-Strategy": result.strategy,
            "X-Render-Pooled": "true" if result.pooled else "false",
            "X-Request-Id": result.request_id,
        },
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
