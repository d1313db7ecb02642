"""Shared fixtures.

pytest-asyncio is configured with ``asyncio_mode = "auto"`` in pyproject.toml,
so ``async def`` tests and fixtures are picked up automatically.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from prerenderer.config import Settings
from prerenderer.storage import MemoryDriver, SnapshotStore

from tests.helpers import FakeRenderer, make_settings


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture()
def store() -> SnapshotStore:
    return SnapshotStore(MemoryDriver(), default_ttl_ms=60_000)


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer()
