"""Session factory: owns the single shared browser engine."""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

from core.exceptions import EngineUnavailable

from .config import EngineConfig
from .session import RenderSession

logger = logging.getLogger(__name__)

# Well-known install locations, tried after the configured path
SYSTEM_EXECUTABLES = [
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
]

# Binary names looked up on PATH
EXECUTABLE_NAMES = [
    "chromium",
    "chromium-browser",
    "google-chrome",
    "google-chrome-stable",
    "chrome",
]

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI",
    "--disable-ipc-flooding-protection",
    "--disable-extensions",
    "--disable-default-apps",
    "--mute-audio",
    "--no-first-run",
    "--disable-sync",
    "--disable-background-networking",
    "--run-all-compositor-stages-before-draw",
    "--disable-threaded-animation",
    "--disable-threaded-scrolling",
]


def resolve_candidates(configured: Optional[str] = None) -> List[Optional[str]]:
    """
    Build the ordered list of executables to try.

    Args:
        configured: Explicit executable path (kept only if it exists)

    Returns:
        Executable paths in launch order; the trailing None stands for
        Playwright's bundled browser
    """
    candidates: List[Optional[str]] = []

    def add(path: Optional[str]) -> None:
        if path and path not in candidates:
            candidates.append(path)

    if configured:
        if Path(configured).exists():
            add(configured)
        else:
            logger.warning(f"Configured engine path {configured} does not exist, ignoring it")

    for path in SYSTEM_EXECUTABLES:
        if Path(path).exists():
            add(path)

    for name in EXECUTABLE_NAMES:
        add(shutil.which(name))

    candidates.append(None)
    return candidates


class Engine:
    """A running browser that hosts render sessions."""

    def __init__(self, browser: Any, executable: Optional[str] = None):
        self.browser = browser
        self.executable = executable

    @property
    def label(self) -> str:
        return self.executable or "bundled chromium"

    def is_connected(self) -> bool:
        return self.browser.is_connected()

    async def open_session(self) -> RenderSession:
        page = await self.browser.new_page()
        return RenderSession(page)

    async def close(self) -> None:
        if self.browser.is_connected():
            await self.browser.close()


class ChromiumLauncher:
    """Launches Chromium through a lazily started Playwright driver."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self._playwright = None

    async def __call__(self, executable: Optional[str]) -> Engine:
        if self._playwright is None:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()

        browser = await self._playwright.chromium.launch(
            headless=True,
            executable_path=executable,
            args=CHROMIUM_ARGS,
            timeout=self.config.launch_timeout * 1000,
        )
        return Engine(browser, executable=executable)

    async def stop(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


Launcher = Callable[[Optional[str]], Awaitable[Engine]]


class EngineFactory:
    """Get-or-create access to the shared engine with single-flight launch."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        launcher: Optional[Launcher] = None,
        candidates: Optional[Callable[[Optional[str]], List[Optional[str]]]] = None,
    ):
        """
        Initialize the factory.

        Args:
            config: Engine configuration (environment defaults if omitted)
            launcher: Coroutine launching one candidate (Playwright if omitted)
            candidates: Candidate resolver (filesystem and PATH lookup if omitted)
        """
        self.config = config or EngineConfig.from_env()
        self._launcher = launcher or ChromiumLauncher(self.config)
        self._candidates = candidates or resolve_candidates
        self._engine: Optional[Engine] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None and self._engine.is_connected()

    async def acquire_engine(self) -> Engine:
        """
        Return the live engine, launching one if needed.

        Returns:
            Connected Engine

        Raises:
            EngineUnavailable: If no candidate executable could be launched
        """
        if self._engine is not None:
            if self._engine.is_connected():
                return self._engine
            logger.warning(f"Engine {self._engine.label} disconnected, relaunching")
            self._engine = None

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._launch())
            self._pending.add_done_callback(self._launch_finished)

        return await asyncio.shield(self._pending)

    def _launch_finished(self, task: asyncio.Task) -> None:
        if self._pending is task:
            self._pending = None
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Engine launch failed: {task.exception()}")

    async def _launch(self) -> Engine:
        candidates = self._candidates(self.config.executable_path)
        last_error: Optional[BaseException] = None

        for candidate in candidates:
            label = candidate or "bundled chromium"
            engine: Optional[Engine] = None
            try:
                engine = await self._launcher(candidate)
                await self._probe(engine)
            except Exception as e:
                last_error = e
                logger.warning(f"Engine candidate {label} failed: {e}")
                if engine is not None:
                    await self._close_quietly(engine)
                continue

            self._engine = engine
            logger.info(f"Engine launched and probed: {label}")
            return engine

        raise EngineUnavailable(
            f"No browser engine could be started ({len(candidates)} candidates tried): {last_error}"
        )

    async def _probe(self, engine: Engine) -> None:
        """Open and close a throwaway session to prove the engine works."""
        session = await engine.open_session()
        await session.close()

    async def _close_quietly(self, engine: Engine) -> None:
        try:
            await engine.close()
        except Exception as e:
            logger.warning(f"Failed to close engine {engine.label}: {e}")

    async def close(self) -> None:
        """Close the engine and stop the driver."""
        engine, self._engine = self._engine, None
        if engine is not None:
            await self._close_quietly(engine)
        stop = getattr(self._launcher, "stop", None)
        if stop is not None:
            await stop()
