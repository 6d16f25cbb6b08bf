"""Browser engine, render sessions and the session pool.

This module provides:
- EngineFactory: Single shared Chromium instance with single-flight launch
- SessionPool: Bounded set of pages with the Mermaid runtime pre-loaded
- RenderSession: One page and the operations the render pipeline drives
- poll_until: Bounded polling with a ready / timed-out / error outcome

Example usage:
    from core.engine import EngineConfig, EngineFactory, RendererDocument, SessionPool

    config = EngineConfig.from_env()
    factory = EngineFactory(config)
    pool = SessionPool(factory, RendererDocument.from_config(config))
    await pool.warm_up()

    session = pool.acquire()  # None when drained
"""

from .config import EngineConfig
from .document import RendererDocument, find_renderer_script
from .factory import ChromiumLauncher, Engine, EngineFactory, resolve_candidates
from .polling import PollOutcome, PollResult, poll_until
from .pool import SessionPool
from .session import RenderSession

__all__ = [
    # Configuration
    "EngineConfig",
    "RendererDocument",
    "find_renderer_script",
    # Engine
    "Engine",
    "EngineFactory",
    "ChromiumLauncher",
    "resolve_candidates",
    # Sessions
    "RenderSession",
    "SessionPool",
    # Polling
    "PollOutcome",
    "PollResult",
    "poll_until",
]
