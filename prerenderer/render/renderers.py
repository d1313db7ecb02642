"""Rendering backends.

All renderers share a common interface: ``await render(path, timeout) -> str``.
Failures are always one of :class:`~prerenderer.errors.RenderTimeout`,
:class:`~prerenderer.errors.RenderNavigationError` or
:class:`~prerenderer.errors.RenderCrash`.

Providers:
  1. ``playwright`` — headless Chromium; runs the page's JavaScript.
  2. ``http``       — plain ``httpx`` fetch; no JavaScript.  Useful for
     server-rendered apps and in development where no browser is installed.

Paths are resolved against ``settings.render_base_url``, i.e. the live app
that bots would otherwise hit.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import urljoin

import httpx

from prerenderer.config import Settings
from prerenderer.errors import ConfigError, RenderCrash, RenderNavigationError, RenderTimeout
from prerenderer.logger import get_logger

logger = get_logger("render")

# Renders must not look like bots, or the prerenderer would prerender itself.
_BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

_CHROMIUM_ARGS = [
    "--disable-gpu",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class Renderer(ABC):
    """Abstract base class for a rendering backend."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/") + "/"

    @property
    @abstractmethod
    def name(self) -> str:
        """Renderer name as used by ``settings.renderer``."""

    def url_for(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    @abstractmethod
    async def render(self, path: str, timeout: float) -> str:
        """Load *path* and return the resulting markup."""

    async def close(self) -> None:
        """Release any browser or connection resources."""


# ---------------------------------------------------------------------------
# Playwright (headless Chromium)
# ---------------------------------------------------------------------------

class PlaywrightRenderer(Renderer):
    """Render with a shared headless Chromium instance.

    The browser is launched lazily on first use and reused; every render
    gets its own page, closed when the render finishes or is cancelled.
    """

    def __init__(self, base_url: str, wait_until: str = "networkidle") -> None:
        super().__init__(base_url)
        self.wait_until = wait_until
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "playwright"

    async def _ensure_browser(self) -> Any:
        if self._context is not None:
            return self._context

        async with self._lock:
            if self._context is not None:
                return self._context

            # Imported lazily so the http renderer works without a browser install.
            from playwright.async_api import async_playwright  # noqa: PLC0415

            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=True, args=_CHROMIUM_ARGS
                )
                self._context = await self._browser.new_context(user_agent=_BROWSER_UA)
            except Exception as exc:
                await self.close()
                raise RenderCrash(f"Could not launch headless browser: {exc}") from exc
            logger.info("Headless browser started")
            return self._context

    async def render(self, path: str, timeout: float) -> str:
        from playwright.async_api import Error as PlaywrightError  # noqa: PLC0415
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError  # noqa: PLC0415

        context = await self._ensure_browser()
        url = self.url_for(path)
        page = await context.new_page()
        try:
            response = await page.goto(url, wait_until=self.wait_until, timeout=timeout * 1000)
            if response is not None and response.status >= 400:
                raise RenderNavigationError(f"{url} answered HTTP {response.status}")
            return await page.content()
        except PlaywrightTimeoutError as exc:
            raise RenderTimeout(f"Timed out rendering {url} after {timeout:.1f}s") from exc
        except PlaywrightError as exc:
            if "net::" in str(exc) or "NS_ERROR" in str(exc):
                raise RenderNavigationError(f"Navigation to {url} failed: {exc}") from exc
            raise RenderCrash(f"Browser failed rendering {url}: {exc}") from exc
        finally:
            try:
                await page.close()
            except PlaywrightError:
                logger.debug("Page for %s was already closed", url)

    async def close(self) -> None:
        context, browser, playwright = self._context, self._browser, self._playwright
        self._context = self._browser = self._playwright = None
        if context is not None:
            await context.close()
        if browser is not None:
            await browser.close()
        if playwright is not None:
            await playwright.stop()


# ---------------------------------------------------------------------------
# Plain HTTP
# ---------------------------------------------------------------------------

class HttpRenderer(Renderer):
    """Fetch the live page's HTML as-is with ``httpx``."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(base_url)
        self._client = client

    @property
    def name(self) -> str:
        return "http"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": _BROWSER_UA},
                follow_redirects=True,
            )
        return self._client

    async def render(self, path: str, timeout: float) -> str:
        url = self.url_for(path)
        try:
            response = await self._get_client().get(url, timeout=timeout)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise RenderTimeout(f"Timed out fetching {url} after {timeout:.1f}s") from exc
        except httpx.HTTPStatusError as exc:
            raise RenderNavigationError(
                f"{url} answered HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RenderNavigationError(f"Fetching {url} failed: {exc}") from exc
        return response.text

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_RENDERERS = {
    "playwright": PlaywrightRenderer,
    "http": HttpRenderer,
}


def get_renderer(settings: Settings) -> Renderer:
    """Instantiate the renderer selected by ``settings.renderer``."""
    try:
        cls = _RENDERERS[settings.renderer]
    except KeyError as exc:
        raise ConfigError(
            f"Unknown renderer {settings.renderer!r}; use one of {sorted(_RENDERERS)}"
        ) from exc
    return cls(settings.render_base_url)
