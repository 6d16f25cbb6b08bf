"""Diagram Render Service FastAPI Application"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from dotenv import load_dotenv
load_dotenv()  # Load .env file

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .routes import generate, health

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class ProxyHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to handle X-Forwarded-Proto behind a reverse proxy."""

    async def dispatch(self, request: Request, call_next):
        if request.headers.get("x-forwarded-proto") == "https":
            request.scope["scheme"] = "https"
        return await call_next(request)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Stamp each request with its start time for duration reporting."""

    async def dispatch(self, request: Request, call_next):
        request.state.started = time.perf_counter()
        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler: warm the session pool, shut down on exit."""
    logger.info("Starting Diagram Render Service...")
    pipeline = generate.get_pipeline()
    try:
        await pipeline.warm_up()
    except Exception as e:
        logger.error(f"Session pool warm-up failed, requests will use fresh sessions: {e}")
    yield
    logger.info("Shutting down Diagram Render Service...")
    await pipeline.shutdown()


app = FastAPI(
    title="Diagram Render Service",
    description="Render Mermaid diagram descriptions to SVG, PNG and PDF",
    version="0.1.0",
    lifespan=lifespan,
)

# Proxy headers middleware (must be added first)
app.add_middleware(ProxyHeadersMiddleware)
app.add_middleware(RequestTimingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Response-Time", "X-Render-Strategy", "X-Render-Pooled", "X-Request-Id"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are invalid requests, not render failures."""
    started = getattr(request.state, "started", None) or time.perf_counter()
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return generate.error_response("invalid_request", errors or "Invalid request body", started)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(generate.router, prefix="/api", tags=["Generate"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Diagram Render Service",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs",
    }
