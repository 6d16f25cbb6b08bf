"""Conversion strategies for raster and document output."""

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from core.engine.scripts import CLIP_REGION, MEASURE_VECTOR_OUTPUT
from core.exceptions import ConversionTimeout, StrategyUnavailable

from .config import ConversionConfig
from .repair import prepare_for_rasterization
from .types import ConversionContext

logger = logging.getLogger(__name__)

# ImageMagick 7 ships "magick"; version 6 only "convert"
RASTERIZER_NAMES = ["magick", "convert"]


class ConversionStrategy:
    """Base class for one way of producing final bytes."""

    name = "strategy"

    def __init__(self, config: ConversionConfig):
        self.config = config

    def is_available(self, ctx: ConversionContext) -> bool:
        return True

    def timeout_for(self, ctx: ConversionContext) -> float:
        raise NotImplementedError

    async def convert(self, ctx: ConversionContext) -> bytes:
        raise NotImplementedError


def resolve_rasterizer(configured: Optional[str] = None) -> Optional[str]:
    """Return the external rasterizer executable, or None if none is installed."""
    if configured:
        if Path(configured).exists():
            return configured
        logger.warning(f"Configured rasterizer {configured} does not exist, ignoring it")
    for name in RASTERIZER_NAMES:
        resolved = shutil.which(name)
        if resolved:
            return resolved
    return None


class ExternalRasterizer(ConversionStrategy):
    """ImageMagick run as a subprocess on scratch files."""

    name = "external"

    def __init__(self, config: ConversionConfig, binary: Optional[str] = None):
        super().__init__(config)
        self.binary = binary if binary is not None else resolve_rasterizer(config.rasterizer_path)

    def is_available(self, ctx: ConversionContext) -> bool:
        return self.binary is not None

    def timeout_for(self, ctx: ConversionContext) -> float:
        return self.config.scaled(self.config.external_timeout, ctx.profile.slow)

    def build_command(self, source: Path, target: Path) -> List[str]:
        return [
            self.binary,
            "-density",
            str(self.config.raster_density),
            "-background",
            "white",
            str(source),
            str(target),
        ]

    async def convert(self, ctx: ConversionContext) -> bytes:
        if self.binary is None:
            raise StrategyUnavailable("No external rasterizer installed")

        scratch = Path(tempfile.mkdtemp(prefix="diagram-raster-"))
        source = scratch / "input.svg"
        target = scratch / "output.png"
        try:
            source.write_text(ctx.markup, encoding="utf-8")
            await self._run(self.build_command(source, target), self.timeout_for(ctx))
            return target.read_bytes()
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    async def _run(self, command: Sequence[str], timeout: float) -> None:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConversionTimeout(f"{Path(command[0]).name} exceeded {timeout}s")
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise RuntimeError(f"Rasterizer exited with status {process.returncode}: {detail}")


def _load_cairosvg():
    try:
        import cairosvg
    except (ImportError, OSError) as e:
        raise StrategyUnavailable(f"cairosvg is not usable: {e}")
    return cairosvg


class InProcessRasterizer(ConversionStrategy):
    """cairosvg conversion straight from markup bytes, in a worker thread."""

    name = "in_process"

    def __init__(self, config: ConversionConfig):
        super().__init__(config)
        self._available: Optional[bool] = None

    def is_available(self, ctx: ConversionContext) -> bool:
        if self._available is None:
            try:
                _load_cairosvg()
                self._available = True
            except StrategyUnavailable as e:
                logger.warning(f"In-process rasterizer disabled: {e}")
                self._available = False
        return self._available

    def timeout_for(self, ctx: ConversionContext) -> float:
        return self.config.scaled(self.config.in_process_timeout, ctx.profile.slow)

    async def measure(self, ctx: ConversionContext) -> Tuple[int, int]:
        """Output size from the live layout, else the configured default, floored."""
        width, height = self.config.default_width, self.config.default_height
        if ctx.has_live_session:
            try:
                measured = await ctx.session.evaluate(MEASURE_VECTOR_OUTPUT)
            except Exception as e:
                logger.debug(f"Layout measurement failed, using defaults: {e}")
                measured = None
            if measured:
                width = measured.get("width") or width
                height = measured.get("height") or height

        floor = self.config.min_raster_size
        return max(floor, int(width)), max(floor, int(height))

    async def convert(self, ctx: ConversionContext) -> bytes:
        cairosvg = _load_cairosvg()
        width, height = await self.measure(ctx)
        markup = prepare_for_rasterization(
            ctx.markup,
            width,
            height,
            repair=ctx.profile.needs_repair,
        )
        data = markup.encode("utf-8")
        return await asyncio.to_thread(
            cairosvg.svg2png,
            bytestring=data,
            dpi=self.config.raster_density,
        )


class ScreenshotRasterizer(ConversionStrategy):
    """Browser screenshots at three escalating levels: element, clipped region, full page."""

    name = "screenshot"

    def is_available(self, ctx: ConversionContext) -> bool:
        return ctx.has_live_session

    def level_timeout(self, ctx: ConversionContext) -> float:
        return self.config.scaled(self.config.screenshot_timeout, ctx.profile.slow)

    def timeout_for(self, ctx: ConversionContext) -> float:
        # Each level is bounded on its own; the strategy bound covers all three
        return self.level_timeout(ctx) * 3 + self.config.clip_settle_delay

    async def convert(self, ctx: ConversionContext) -> bytes:
        levels: List[Tuple[str, Callable[[ConversionContext], Awaitable[bytes]]]] = [
            ("element", self._capture_element),
            ("region", self._capture_region),
            ("page", self._capture_page),
        ]
        timeout = self.level_timeout(ctx)
        last_error: Optional[BaseException] = None

        for level, capture in levels:
            try:
                data = await asyncio.wait_for(capture(ctx), timeout=timeout)
            except asyncio.TimeoutError:
                last_error = ConversionTimeout(f"{level} screenshot exceeded {timeout}s")
                logger.warning(f"[{ctx.request_id}] {last_error}")
                continue
            except Exception as e:
                last_error = e
                logger.warning(f"[{ctx.request_id}] {level} screenshot failed: {e}")
                continue
            if data:
                logger.info(f"[{ctx.request_id}] Screenshot captured at {level} level")
                return data

        raise RuntimeError(f"All screenshot levels failed: {last_error}")

    async def _capture_element(self, ctx: ConversionContext) -> bytes:
        return await ctx.session.screenshot_element()

    async def _capture_region(self, ctx: ConversionContext) -> bytes:
        region = await ctx.session.evaluate(CLIP_REGION, self.config.clip_margin)
        if not region or not region.get("visible"):
            raise ValueError(f"Output region is not visible: {region}")

        await asyncio.sleep(self.config.clip_settle_delay)
        cap = self.config.max_clip_size
        return await ctx.session.screenshot_region(
            region["x"],
            region["y"],
            min(region["width"], cap),
            min(region["height"], cap),
        )

    async def _capture_page(self, ctx: ConversionContext) -> bytes:
        return await ctx.session.screenshot_page(full_page=True)


class DocumentPrinter(ConversionStrategy):
    """The engine's native print-to-PDF on the bound session."""

    name = "print"

    def is_available(self, ctx: ConversionContext) -> bool:
        return ctx.has_live_session

    def timeout_for(self, ctx: ConversionContext) -> float:
        return self.config.scaled(self.config.screenshot_timeout, ctx.profile.slow)

    async def convert(self, ctx: ConversionContext) -> bytes:
        return await ctx.session.print_document(self.config.pdf_format, self.config.pdf_margin)


def default_raster_strategies(config: ConversionConfig) -> List[ConversionStrategy]:
    return [
        ExternalRasterizer(config),
        InProcessRasterizer(config),
        ScreenshotRasterizer(config),
    ]
