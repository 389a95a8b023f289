"""Lazily launched headless browser shared by browser-driven drivers."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .errors import UserConfigError

try:  # pragma: no cover
    from playwright.async_api import async_playwright
except ModuleNotFoundError:  # pragma: no cover
    async_playwright = None  # type: ignore[assignment]

__all__ = ["BrowserSession"]

LOGGER = logging.getLogger(__name__)


class BrowserSession:
    """Run-scoped browser handle: launched on first use, closed exactly once."""

    def __init__(self) -> None:
        self._playwright: Optional[Any] = None
        self._browser: Optional[Any] = None

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def get(self) -> Any:
        """Return the shared browser, launching Chromium on first call.

        Raises:
            UserConfigError: If Playwright is not installed.
        """

        if self._browser is not None:
            return self._browser
        if async_playwright is None:
            raise UserConfigError(
                "The blob driver requires Playwright. Install with `pip install apidirectory-registry[blob]` "
                "and run `playwright install chromium`."
            )
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch()
        LOGGER.info("browser launched", extra={"stage": "driver"})
        return self._browser

    async def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            await browser.close()
            LOGGER.info("browser closed", extra={"stage": "save"})
        if playwright is not None:
            await playwright.stop()
