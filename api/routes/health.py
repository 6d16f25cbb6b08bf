"""Health check routes."""

from fastapi import APIRouter

from .generate import get_pipeline

router = APIRouter()


@router.get("/health")
async def health_check():
    """Engine connectivity and session pool state."""
    return get_pipeline().health()
