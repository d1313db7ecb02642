"""High-level decision API used by the HTTP layer and the CLI.

:class:`Prerenderer` wires together the settings, the proxy-signal adapter,
the classifier, the snapshot store and the render coordinator.

The "last rejected reason" and "last response" are kept in
:class:`contextvars.ContextVar` objects rather than on the instance.  Every
asyncio task runs in its own copy of the context, so concurrent requests
never see each other's values.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextvars import ContextVar
from typing import Any, Optional

from prerenderer.classifier import classify
from prerenderer.config import Settings
from prerenderer.config import settings as default_settings
from prerenderer.errors import ConfigError, RenderError, StorageError
from prerenderer.logger import get_logger, setup_logger
from prerenderer.models import ClassificationResult, RejectionReason, ResolveResult
from prerenderer.proxy_signal import interpret
from prerenderer.render import RenderCoordinator, Renderer, get_renderer
from prerenderer.storage import SnapshotStore, StorageDriver, get_driver

_last_rejected_reason: ContextVar[Optional[RejectionReason]] = ContextVar(
    "prerender_last_rejected_reason", default=None
)
_last_response: ContextVar[Optional[ResolveResult]] = ContextVar(
    "prerender_last_response", default=None
)


class Prerenderer:
    """Decide per request whether to prerender, and produce the snapshot.

    Args:
        config: Settings to use.  Defaults to the module-level singleton.
        renderer: Override the renderer chosen by ``config.renderer``.
        driver: Override the storage driver chosen by ``config.snapshots_driver``.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        renderer: Optional[Renderer] = None,
        driver: Optional[StorageDriver] = None,
    ) -> None:
        self.config = config or default_settings
        self.logger = get_logger("prerenderer")
        self._renderer = renderer
        self._driver = driver
        self.store: Optional[SnapshotStore] = None
        self.coordinator: Optional[RenderCoordinator] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def initialize(self) -> None:
        """Set up logging, storage and the renderer.

        Raises:
            ConfigError: The snapshots directory cannot be written.
        """
        setup_logger(log_file=self.config.log_file, level=self.config.log_level.upper())

        driver = self._driver or get_driver(
            self.config.snapshots_driver, self.config.snapshots_directory
        )
        if driver.name == "fs":
            self._check_writable(self.config.snapshots_directory)
        try:
            driver.ensure_dir("")
        except StorageError as exc:
            raise ConfigError(f"Snapshot storage is unusable: {exc}") from exc

        renderer = self._renderer or get_renderer(self.config)
        self.store = SnapshotStore(driver, default_ttl_ms=self.config.snapshot_ttl_ms)
        self.coordinator = RenderCoordinator(
            self.store,
            renderer,
            render_timeout=self.config.render_timeout,
            max_concurrent_renders=self.config.max_concurrent_renders,
            overload_policy=self.config.overload_policy,
            queue_timeout=self.config.render_queue_timeout,
            ttl_ms=self.config.snapshot_ttl_ms or None,
        )
        self.logger.info(
            "Prerenderer ready (driver=%s, renderer=%s, snapshots=%s)",
            driver.name, renderer.name, self.config.snapshots_directory,
        )

    @staticmethod
    def _check_writable(directory: os.PathLike) -> None:
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.TemporaryFile(dir=directory):
                pass
        except OSError as exc:
            raise ConfigError(f"Snapshots directory {directory} is not writable: {exc}") from exc

    async def close(self) -> None:
        if self.coordinator is not None:
            await self.coordinator.close()

    def _require_coordinator(self) -> RenderCoordinator:
        if self.coordinator is None:
            raise RuntimeError("Prerenderer.initialize() must be awaited first")
        return self.coordinator

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def get_logger(self) -> logging.Logger:
        return self.logger

    def get_config(self) -> Settings:
        return self.config

    def get_last_rejected_reason(self) -> Optional[RejectionReason]:
        """Reason of the latest :meth:`should_prerender` call in this context."""
        return _last_rejected_reason.get()

    def get_last_response(self) -> Optional[ResolveResult]:
        """Result of the latest successful :meth:`prerender` in this context."""
        return _last_response.get()

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------
    def evaluate(self, request: Any) -> ClassificationResult:
        """Classify *request*, honouring a trusted upstream proxy label."""
        result = classify(request, self.config, interpret(request, self.config))
        if not result.accepted:
            self.logger.debug(
                "Not prerendering %s: %s", getattr(request, "path", request), result.reason.value
            )
        return result

    def should_prerender(self, request: Any) -> bool:
        result = self.evaluate(request)
        _last_rejected_reason.set(result.reason)
        return result.accepted

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    async def resolve(self, request: Any) -> ResolveResult:
        """Return cached or freshly rendered markup; render failures propagate."""
        return await self._require_coordinator().resolve(request)

    async def prerender(self, request: Any) -> Optional[ResolveResult]:
        """Like :meth:`resolve`, but return ``None`` when the live page should be served."""
        try:
            result = await self.resolve(request)
        except (RenderError, StorageError) as exc:
            self.logger.warning(
                "Serving %s live after prerender failure (%s): %s",
                getattr(request, "path", request), type(exc).__name__, exc,
            )
            return None
        _last_response.set(result)
        return result
