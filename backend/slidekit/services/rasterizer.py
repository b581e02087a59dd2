"""
Headless Chromium rasterizer.

One browser per pipeline run, one page per slide. Use as an async context
manager so the browser is closed even when a slide fails:

    async with Rasterizer() as rasterizer:
        png = await rasterizer.capture(html, 1080, 1350)
"""

import asyncio
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from slidekit.config import Settings, get_settings
from slidekit.errors import RasterizationError
from slidekit.services.slide_html import ROOT_SELECTOR

logger = logging.getLogger(__name__)


class Rasterizer:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._playwright = None
        self._browser = None

    async def __aenter__(self) -> "Rasterizer":
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(args=list(self.settings.chromium_args))
        except PlaywrightError as e:
            await self.close()
            raise RasterizationError(f"Could not start headless browser: {e.message}") from e
        logger.debug("Headless browser started")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.warning(f"Browser close failed: {e.message}")
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def capture(
        self,
        html: str,
        width: int,
        height: int,
        image_format: str = "png",
        transparent: bool = False,
    ) -> bytes:
        """Screenshot of the slide root element. transparent only works with png."""
        if self._browser is None:
            raise RasterizationError("Rasterizer used outside its context")

        s = self.settings
        page = await self._browser.new_page(viewport={"width": width, "height": height})
        try:
            await page.set_viewport_size({"width": width, "height": height})
            await page.set_content(html, wait_until="load", timeout=s.content_timeout_ms)
            await page.wait_for_selector(ROOT_SELECTOR, state="visible", timeout=s.selector_timeout_ms)
            # Let fonts and background images settle
            await asyncio.sleep(s.screenshot_settle_ms / 1000)

            kwargs = {"type": image_format, "timeout": s.content_timeout_ms}
            if image_format == "png":
                kwargs["omit_background"] = transparent
            return await page.locator(ROOT_SELECTOR).screenshot(**kwargs)
        except PlaywrightTimeoutError as e:
            raise RasterizationError(f"Timed out rendering slide: {e.message.splitlines()[0]}") from e
        except PlaywrightError as e:
            raise RasterizationError(f"Browser error rendering slide: {e.message.splitlines()[0]}") from e
        finally:
            try:
                await page.close()
            except PlaywrightError:
                logger.debug("Page already closed")
