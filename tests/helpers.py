"""Test doubles and settings builders shared by the test modules.

``FakeRenderer`` stands in for the headless browser: it records every path
it is asked to render and can be told to sleep or fail.  Playwright itself
is never launched in the test suite.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from prerenderer.config import Settings
from prerenderer.render.renderers import Renderer

GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
BROWSER_UA = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


class FakeRenderer(Renderer):
    name = "fake"

    def __init__(
        self,
        delay: float = 0.0,
        error: Optional[BaseException] = None,
    ) -> None:
        super().__init__("http://app.test")
        self.delay = delay
        self.error = error
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def render(self, path: str, timeout: float) -> str:
        self.calls.append(path)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return f'<html><body><div id="app">rendered {path} #{len(self.calls)}</div></body></html>'
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True


def make_settings(tmp_path: Path, **overrides) -> Settings:
    """Settings isolated from the environment and the home directory."""
    values = {
        "snapshots_directory": tmp_path / "snapshots",
        "snapshots_driver": "fs",
        "renderer": "http",
        "render_base_url": "http://app.test",
        "log_level": "DEBUG",
        "log_file": None,
        "static_directory": None,
        "trust_proxy_signal": False,
        "proxy_shared_token": None,
    }
    values.update(overrides)
    return Settings(**values)
