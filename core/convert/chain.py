"""Conversion chain: vector markup to the requested final format."""

import asyncio
import io
import logging
import time
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from core.engine.scripts import LAYOUT_STABLE
from core.exceptions import ConversionFailed, ConversionTimeout

from .config import ConversionConfig
from .strategies import ConversionStrategy, DocumentPrinter, default_raster_strategies
from .types import ConversionContext, ConversionOutcome, OutputFormat, StrategyAttempt

logger = logging.getLogger(__name__)


def is_valid_raster(data: bytes) -> bool:
    """Check that bytes decode as an image."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
        return True
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return False


def is_valid_document(data: bytes) -> bool:
    return data.startswith(b"%PDF")


class ConversionChain:
    """Tries strategies in order until one yields valid bytes."""

    def __init__(
        self,
        config: Optional[ConversionConfig] = None,
        raster_strategies: Optional[List[ConversionStrategy]] = None,
        document_strategy: Optional[ConversionStrategy] = None,
    ):
        """
        Initialize the conversion chain.

        Args:
            config: Conversion configuration (environment defaults if omitted)
            raster_strategies: Ordered PNG strategies (external, in-process, screenshot)
            document_strategy: PDF strategy (engine print if omitted)
        """
        self.config = config or ConversionConfig.from_env()
        self.raster_strategies = (
            raster_strategies
            if raster_strategies is not None
            else default_raster_strategies(self.config)
        )
        self.document_strategy = document_strategy or DocumentPrinter(self.config)

    async def convert(self, ctx: ConversionContext) -> ConversionOutcome:
        """
        Produce the final bytes for a context.

        Args:
            ctx: Markup, requested format, diagram profile and bound session

        Returns:
            ConversionOutcome from the first strategy that succeeded

        Raises:
            ConversionFailed: If every strategy failed or was unavailable
        """
        if ctx.output_format is OutputFormat.SVG:
            return ConversionOutcome(
                data=ctx.markup.encode("utf-8"),
                output_format=OutputFormat.SVG,
                strategy="passthrough",
            )

        if ctx.output_format is OutputFormat.PDF:
            return await self._run(ctx, [self.document_strategy])

        if ctx.profile.slow:
            await self._stabilize(ctx)
        return await self._run(ctx, self.raster_strategies)

    async def _stabilize(self, ctx: ConversionContext) -> None:
        """Give slow layouts time to settle before any raster attempt."""
        if not ctx.has_live_session:
            return

        result = await ctx.session.wait_for(
            LAYOUT_STABLE,
            interval=self.config.stabilize_interval,
            timeout=self.config.stabilize_timeout,
        )
        if not result.ready:
            logger.warning(
                f"[{ctx.request_id}] {ctx.profile.kind} layout not stable "
                f"after {result.elapsed:.1f}s ({result.outcome.value})"
            )
        await asyncio.sleep(self.config.stabilize_delay)

    async def _run(
        self,
        ctx: ConversionContext,
        strategies: List[ConversionStrategy],
    ) -> ConversionOutcome:
        attempts: List[StrategyAttempt] = []
        last_error: Optional[BaseException] = None

        for strategy in strategies:
            if not strategy.is_available(ctx):
                attempts.append(StrategyAttempt(strategy.name, "unavailable"))
                continue

            timeout = strategy.timeout_for(ctx)
            started = time.perf_counter()
            try:
                data = await asyncio.wait_for(strategy.convert(ctx), timeout=timeout)
            except asyncio.TimeoutError:
                last_error = ConversionTimeout(f"{strategy.name} exceeded {timeout}s")
                attempts.append(
                    StrategyAttempt(strategy.name, "timeout", str(last_error), _elapsed_ms(started))
                )
                logger.warning(f"[{ctx.request_id}] {last_error}")
                continue
            except Exception as e:
                last_error = e
                attempts.append(
                    StrategyAttempt(strategy.name, "failed", str(e), _elapsed_ms(started))
                )
                logger.warning(f"[{ctx.request_id}] Strategy {strategy.name} failed: {e}")
                continue

            if not data or not self._is_valid(ctx.output_format, data):
                last_error = ValueError(f"{strategy.name} produced no valid {ctx.output_format.value}")
                attempts.append(
                    StrategyAttempt(strategy.name, "invalid", str(last_error), _elapsed_ms(started))
                )
                logger.warning(f"[{ctx.request_id}] {last_error}")
                continue

            attempts.append(StrategyAttempt(strategy.name, "ok", None, _elapsed_ms(started)))
            logger.info(
                f"[{ctx.request_id}] {ctx.output_format.value.upper()} via {strategy.name} "
                f"({len(data)} bytes)"
            )
            return ConversionOutcome(
                data=data,
                output_format=ctx.output_format,
                strategy=strategy.name,
                attempts=attempts,
            )

        tried = ", ".join(f"{a.name}={a.status}" for a in attempts) or "none"
        raise ConversionFailed(
            f"{ctx.output_format.value.upper()} conversion failed ({tried}): {last_error}",
            last_error=last_error,
        )

    def _is_valid(self, output_format: OutputFormat, data: bytes) -> bool:
        if output_format is OutputFormat.PNG:
            return is_valid_raster(data)
        if output_format is OutputFormat.PDF:
            return is_valid_document(data)
        return True


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
