"""Bounded pool of pre-warmed render sessions."""

import asyncio
import logging
from collections import deque
from typing import Deque, Optional, Set

from core.exceptions import EngineUnavailable

from .config import EngineConfig
from .document import RendererDocument
from .factory import Engine, EngineFactory
from .polling import PollOutcome
from .scripts import RECYCLE_SURFACE, RENDERER_READY_CHECK
from .session import RenderSession

logger = logging.getLogger(__name__)


class SessionPool:
    """
    Idle render sessions with Mermaid already loaded.

    The pool is the only owner of idle sessions. Sessions it lends out are
    tracked by handle so that idle + checked out + being created never
    exceeds ``max_size``.
    """

    def __init__(
        self,
        factory: EngineFactory,
        document: RendererDocument,
        config: Optional[EngineConfig] = None,
    ):
        self.factory = factory
        self.document = document
        self.config = config or factory.config
        self._idle: Deque[RenderSession] = deque()
        self._checked_out: Set[str] = set()
        self._creating = 0
        self._ready = False
        self._closed = False
        self._warming: Optional[asyncio.Task] = None
        self._top_up_task: Optional[asyncio.Task] = None

    @property
    def max_size(self) -> int:
        return self.config.pool_max_size

    @property
    def size(self) -> int:
        """Number of idle sessions."""
        return len(self._idle)

    @property
    def checked_out(self) -> int:
        return len(self._checked_out)

    @property
    def owned(self) -> int:
        return len(self._idle) + len(self._checked_out) + self._creating

    @property
    def ready(self) -> bool:
        return self._ready

    def status(self) -> dict:
        """Pool state for health reporting."""
        return {
            "ready": self._ready,
            "size": self.size,
            "checked_out": self.checked_out,
            "max_size": self.max_size,
        }

    async def warm_up(self, target_size: Optional[int] = None) -> None:
        """
        Fill the pool with ready sessions, once.

        Concurrent callers await the same warm-up. A failed warm-up re-arms
        so the next caller tries again.

        Args:
            target_size: Sessions to create (defaults to max_size)

        Raises:
            EngineUnavailable: If the engine is down or no session could be created
        """
        if self._ready:
            return
        if self._warming is None:
            self._warming = asyncio.ensure_future(self._warm(target_size or self.max_size))
            self._warming.add_done_callback(self._warm_finished)
        await asyncio.shield(self._warming)

    def _warm_finished(self, task: asyncio.Task) -> None:
        if self._warming is task:
            self._warming = None
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Session pool warm-up failed: {task.exception()}")

    async def _warm(self, target_size: int) -> None:
        engine = await self.factory.acquire_engine()
        count = max(0, min(target_size, self.max_size - self.owned))
        logger.info(f"Warming session pool with {count} sessions")

        created = await self._create_many(engine, count)
        if count > 0 and created == 0:
            raise EngineUnavailable("Session pool warm-up could not create any session")

        self._ready = True
        logger.info(f"Session pool ready: {self.size}/{self.max_size} sessions")

    async def _create_many(self, engine: Engine, count: int) -> int:
        """Create ``count`` sessions concurrently and add the successful ones."""
        if count <= 0:
            return 0

        self._creating += count
        try:
            results = await asyncio.gather(
                *(self._create_session(engine) for _ in range(count)),
                return_exceptions=True,
            )
        finally:
            self._creating -= count

        created = 0
        for result in results:
            if isinstance(result, BaseException):
                logger.warning(f"Failed to create pooled session: {result}")
                continue
            if self._closed or len(self._idle) >= self.max_size:
                await self._discard(result)
                continue
            self._idle.append(result)
            created += 1
        return created

    async def _create_session(self, engine: Engine) -> RenderSession:
        session = await engine.open_session()
        session.pooled = True
        try:
            await session.set_viewport(self.config.viewport_width, self.config.viewport_height)
            await session.load_document(
                self.document.base_html(),
                timeout=self.config.document_load_timeout,
            )
            readiness = await session.wait_for(
                RENDERER_READY_CHECK,
                interval=self.config.ready_poll_interval,
                max_attempts=self.config.ready_poll_attempts,
            )
        except BaseException:
            await self._discard(session)
            raise

        if readiness.outcome is PollOutcome.ERROR:
            await self._discard(session)
            raise EngineUnavailable(f"Renderer readiness probe failed: {readiness.error}")
        if readiness.outcome is PollOutcome.TIMED_OUT:
            # Runtime may still finish initializing; keep the session degraded
            logger.warning(
                f"Session {session.handle}: renderer not confirmed after "
                f"{readiness.attempts} attempts, keeping it"
            )
        return session

    def acquire(self) -> Optional[RenderSession]:
        """
        Take an idle session without waiting.

        Returns:
            A pooled session, or None when the pool is drained
        """
        while self._idle:
            session = self._idle.popleft()
            if session.is_closed:
                logger.debug(f"Dropping closed session {session.handle} from pool")
                self.schedule_top_up()
                continue
            self._checked_out.add(session.handle)
            return session
        return None

    async def release(self, session: RenderSession) -> None:
        """
        Return a session after use.

        Closed sessions are dropped. Others are cleared and probed; a session
        whose runtime did not survive is discarded, a healthy one re-enters
        the pool unless the pool is already full.
        """
        # Stays counted as checked out until the recycle decision is made
        try:
            healthy = await self._recycle(session)
        finally:
            self._checked_out.discard(session.handle)

        if not healthy:
            self.schedule_top_up()
            return

        if self._closed or len(self._idle) >= self.max_size:
            await self._discard(session)
            return

        self._idle.append(session)

    async def _recycle(self, session: RenderSession) -> bool:
        """Clear a returned session; False when it was closed or discarded."""
        if session.is_closed:
            logger.debug(f"Session {session.handle} closed while checked out, dropping it")
            return False

        try:
            runtime_alive = await session.evaluate(RECYCLE_SURFACE)
        except Exception as e:
            logger.warning(f"Session {session.handle} could not be cleared: {e}")
            await self._discard(session)
            return False

        if self.config.verify_on_release and not runtime_alive:
            logger.warning(f"Session {session.handle} lost its renderer runtime, discarding it")
            await self._discard(session)
            return False
        return True

    def schedule_top_up(self) -> None:
        """Start a background top-up unless one is already running."""
        if not self._ready or self._closed:
            return
        if self._top_up_task is not None and not self._top_up_task.done():
            return
        self._top_up_task = asyncio.ensure_future(self._run_top_up())

    async def _run_top_up(self) -> None:
        try:
            await self.top_up()
        except Exception as e:
            logger.warning(f"Session pool top-up failed: {e}")

    async def top_up(self) -> int:
        """
        Create sessions until the pool owns ``max_size`` of them.

        Returns:
            Number of sessions added
        """
        missing = self.max_size - self.owned
        if missing <= 0 or self._closed:
            return 0

        engine = await self.factory.acquire_engine()
        added = await self._create_many(engine, missing)
        logger.info(f"Session pool topped up with {added} sessions ({self.size} idle)")
        return added

    async def _discard(self, session: RenderSession) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Failed to close session {session.handle}: {e}")

    async def close(self) -> None:
        """Close every idle session and stop topping up."""
        self._closed = True
        if self._top_up_task is not None and not self._top_up_task.done():
            self._top_up_task.cancel()

        sessions = list(self._idle)
        self._idle.clear()
        for session in sessions:
            await self._discard(session)
        self._ready = False
        logger.info(f"Session pool closed ({len(sessions)} sessions)")
