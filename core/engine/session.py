"""Render session: one browser page hosting the renderer document."""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from .polling import PollResult, poll_until
from .scripts import VECTOR_OUTPUT_SELECTOR

logger = logging.getLogger(__name__)

BLOCKED_RESOURCE_TYPES = {"image", "font", "media"}


class RenderSession:
    """Wraps a Playwright page with the operations the pipeline needs."""

    def __init__(self, page: Any, pooled: bool = False):
        self.handle = str(uuid.uuid4())[:8]
        self.pooled = pooled
        self.renders = 0
        self.last_good_at: Optional[datetime] = None
        self._page = page

    def __repr__(self) -> str:
        return f"RenderSession({self.handle}, pooled={self.pooled}, renders={self.renders})"

    @property
    def is_closed(self) -> bool:
        return self._page.is_closed()

    def mark_good(self) -> None:
        """Record a successful render on this session."""
        self.renders += 1
        self.last_good_at = datetime.now()

    async def set_viewport(self, width: int, height: int) -> None:
        await self._page.set_viewport_size({"width": width, "height": height})

    async def load_document(self, content: str, timeout: float) -> None:
        """Replace the page content and wait for DOMContentLoaded."""
        await self._page.set_content(
            content,
            wait_until="domcontentloaded",
            timeout=timeout * 1000,
        )

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self._page.evaluate(script)
        return await self._page.evaluate(script, arg)

    async def wait_for(
        self,
        condition: str,
        *,
        interval: float,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> PollResult:
        """Poll an in-page condition until it holds or a bound is reached."""
        return await poll_until(
            lambda: self._page.evaluate(condition),
            interval=interval,
            timeout=timeout,
            max_attempts=max_attempts,
        )

    async def block_resources(self, allow: Callable[[str], bool]) -> None:
        """Abort image, font and media fetches unless ``allow(url)`` is true."""

        async def handle(route):
            request = route.request
            if request.resource_type in BLOCKED_RESOURCE_TYPES and not allow(request.url):
                await route.abort()
            else:
                await route.continue_()

        await self._page.route("**/*", handle)

    async def screenshot_element(self, selector: str = VECTOR_OUTPUT_SELECTOR) -> bytes:
        return await self._page.locator(selector).first.screenshot(type="png")

    async def screenshot_region(self, x: float, y: float, width: float, height: float) -> bytes:
        return await self._page.screenshot(
            type="png",
            clip={"x": x, "y": y, "width": width, "height": height},
        )

    async def screenshot_page(self, full_page: bool = True) -> bytes:
        return await self._page.screenshot(type="png", full_page=full_page)

    async def print_document(self, page_format: str, margin: str) -> bytes:
        """Render the current page to a paginated PDF."""
        return await self._page.pdf(
            format=page_format,
            print_background=True,
            margin={"top": margin, "right": margin, "bottom": margin, "left": margin},
        )

    async def close(self) -> None:
        if not self._page.is_closed():
            await self._page.close()
