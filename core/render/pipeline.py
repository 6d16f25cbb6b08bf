"""Render pipeline: description in, final bytes out."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from core.convert.chain import ConversionChain
from core.convert.config import ConversionConfig
from core.convert.types import ConversionContext
from core.engine.config import EngineConfig
from core.engine.document import RendererDocument
from core.engine.factory import EngineFactory
from core.engine.pool import SessionPool
from core.engine.scripts import EXTRACT_VECTOR_OUTPUT, RENDER_DESCRIPTION, VECTOR_OUTPUT_READY
from core.engine.session import RenderSession
from core.exceptions import (
    ConversionFailed,
    DeadlineExceeded,
    EngineUnavailable,
    NotRendered,
    RenderException,
    RenderFailed,
)

from .types import PipelineConfig, RenderRequest, RenderResult, RenderStage, RenderTrace

logger = logging.getLogger(__name__)


class RenderPipeline:
    """
    Drives one request through INIT -> SESSION_BOUND -> RENDERED -> EXTRACTED -> DONE.

    Pooled sessions are preferred; when the pool is drained or could not be
    warmed, a fresh session is opened for the request and closed afterwards.
    """

    def __init__(
        self,
        factory: EngineFactory,
        pool: SessionPool,
        chain: ConversionChain,
        config: Optional[PipelineConfig] = None,
        document: Optional[RendererDocument] = None,
    ):
        self.factory = factory
        self.pool = pool
        self.chain = chain
        self.config = config or PipelineConfig.from_env()
        self.document = document or pool.document
        self.started_at = time.monotonic()

    @classmethod
    def from_env(cls) -> "RenderPipeline":
        """Build the full stack from environment configuration."""
        engine_config = EngineConfig.from_env()
        engine_config.validate()
        conversion_config = ConversionConfig.from_env()
        conversion_config.validate()
        config = PipelineConfig.from_env()
        config.validate()

        document = RendererDocument.from_config(engine_config)
        factory = EngineFactory(engine_config)
        pool = SessionPool(factory, document, engine_config)
        return cls(
            factory=factory,
            pool=pool,
            chain=ConversionChain(conversion_config),
            config=config,
            document=document,
        )

    async def render(self, description, output_format="svg") -> RenderResult:
        """
        Render a diagram description to the requested format.

        Args:
            description: Mermaid diagram source
            output_format: svg, png or pdf (aliases vector, raster, document)

        Returns:
            RenderResult with the final bytes

        Raises:
            InvalidRequest: Before any session is bound
            EngineUnavailable: No engine could be reached, or the session broke
            RenderFailed: Mermaid rejected the description
            NotRendered: The document did not load or no vector output appeared in time
            ConversionFailed: Every conversion strategy failed
            DeadlineExceeded: The request ran past request_deadline
        """
        request = RenderRequest.create(description, output_format)
        trace = RenderTrace(request.request_id)
        started = time.perf_counter()
        logger.debug(
            f"[{request.request_id}] Render {request.profile.kind} "
            f"to {request.output_format.value}"
        )

        try:
            result = await asyncio.wait_for(
                self._run(request, trace),
                timeout=self.config.request_deadline,
            )
        except asyncio.TimeoutError:
            error = DeadlineExceeded(
                f"Request {request.request_id} exceeded {self.config.request_deadline}s"
            )
            trace.fail(error)
            logger.error(trace.summary())
            raise error
        except RenderException as e:
            trace.fail(e)
            logger.error(trace.summary())
            raise

        result.duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[{request.request_id}] Rendered {request.output_format.value} via {result.strategy} "
            f"in {result.duration_ms:.0f}ms (pooled={result.pooled})"
        )
        logger.debug(trace.summary())
        return result

    async def _run(self, request: RenderRequest, trace: RenderTrace) -> RenderResult:
        try:
            await self.pool.warm_up()
        except Exception as e:
            logger.warning(f"[{request.request_id}] Pool unavailable, using a fresh session: {e}")

        try:
            async with self._bind_session(request) as session:
                trace.advance(RenderStage.SESSION_BOUND)

                if session.pooled:
                    await self._render_description(session, request)
                trace.advance(RenderStage.RENDERED)

                markup = await self._extract(session, request)
                trace.advance(RenderStage.EXTRACTED)

                outcome = await self.chain.convert(
                    ConversionContext(
                        markup=markup,
                        output_format=request.output_format,
                        profile=request.profile,
                        session=session,
                        request_id=request.request_id,
                    )
                )
                session.mark_good()
                trace.advance(RenderStage.DONE)
                return RenderResult(
                    outcome=outcome,
                    request_id=request.request_id,
                    pooled=session.pooled,
                    session_handle=session.handle,
                )
        except RenderException:
            raise
        except Exception as e:
            raise self._classify(e, trace.stage) from e

    @staticmethod
    def _classify(error: Exception, stage: RenderStage) -> RenderException:
        """Map an unexpected error to the kind owned by the stage it escaped from."""
        if stage in (RenderStage.INIT, RenderStage.SESSION_BOUND):
            return EngineUnavailable(f"Render session failed: {error}")
        if stage is RenderStage.RENDERED:
            return NotRendered(f"Diagram output could not be extracted: {error}")
        return ConversionFailed(f"Conversion failed: {error}", last_error=error)

    @asynccontextmanager
    async def _bind_session(self, request: RenderRequest) -> AsyncIterator[RenderSession]:
        """Lend a pooled session or open a fresh one; always give it back."""
        session = self.pool.acquire()
        if session is None:
            session = await self._open_fresh_session(request)
            logger.debug(f"[{request.request_id}] Bound fresh session {session.handle}")
        else:
            logger.debug(f"[{request.request_id}] Bound pooled session {session.handle}")

        try:
            yield session
        finally:
            await self._finalize(session, request)

    async def _open_fresh_session(self, request: RenderRequest) -> RenderSession:
        engine = await self.factory.acquire_engine()
        session = await engine.open_session()
        try:
            await session.set_viewport(
                self.pool.config.viewport_width,
                self.pool.config.viewport_height,
            )
            if self.config.block_resources:
                await session.block_resources(self.document.is_runtime_url)
            try:
                await session.load_document(
                    self.document.html_with(request.description),
                    timeout=self.config.fresh_load_timeout,
                )
            except Exception as e:
                raise NotRendered(
                    f"Renderer document did not load within {self.config.fresh_load_timeout}s: {e}"
                ) from e
        except BaseException:
            await self._finalize(session, request)
            raise
        return session

    async def _finalize(self, session: RenderSession, request: RenderRequest) -> None:
        try:
            if session.pooled:
                await self.pool.release(session)
            else:
                await session.close()
        except Exception as e:
            logger.warning(f"[{request.request_id}] Failed to finalize session {session.handle}: {e}")

    async def _render_description(self, session: RenderSession, request: RenderRequest) -> None:
        result = await session.evaluate(
            RENDER_DESCRIPTION,
            {"code": request.description, "direct": request.profile.direct_render},
        )
        if not result or not result.get("ok"):
            message = (result or {}).get("error") or "Renderer reported failure"
            raise RenderFailed(message)

    async def _extract(self, session: RenderSession, request: RenderRequest) -> str:
        timeout = self.config.render_timeout(session.pooled)
        timeout = self.chain.config.scaled(timeout, request.profile.slow)

        readiness = await session.wait_for(
            VECTOR_OUTPUT_READY,
            interval=self.config.render_poll_interval,
            timeout=timeout,
        )
        if not readiness.ready:
            detail = readiness.error or f"no output after {timeout}s"
            raise NotRendered(f"Diagram did not render: {detail}")

        markup = await session.evaluate(EXTRACT_VECTOR_OUTPUT)
        if not markup:
            raise NotRendered("Rendered output disappeared before extraction")
        return markup

    async def warm_up(self) -> None:
        """Warm the pool ahead of the first request."""
        await self.pool.warm_up()

    def health(self) -> dict:
        """Engine and pool state for the health endpoint."""
        connected = self.factory.is_connected
        pool = self.pool.status()
        return {
            "status": "ok" if connected and pool["ready"] else "degraded",
            "engine": "connected" if connected else "disconnected",
            "pool": pool,
            "uptime": round(time.monotonic() - self.started_at, 1),
        }

    async def shutdown(self) -> None:
        """Close the pool, then the engine."""
        await self.pool.close()
        await self.factory.close()
        logger.info("Render pipeline shut down")
