"""Turn an accepted request into cached markup, rendering at most once per key.

``RenderCoordinator.resolve`` is the single entry point.  For each cache key
it either serves the stored snapshot or starts one render and lets every
concurrent caller for that key await the same outcome.  The renderer is
always handed the key itself, so the page that is rendered is the page the
snapshot is stored under.

In-flight renders live in a dict of ``asyncio.Future`` objects keyed by
cache key.  The check-and-insert on that dict happens on the event loop
without an ``await`` in between, so two callers can never both register a
job for the same key.  A global semaphore caps how many renders run at once.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional, Union

from prerenderer.errors import (
    RenderCrash,
    RenderError,
    RenderOverloaded,
    RenderTimeout,
    StorageError,
)
from prerenderer.logger import get_logger
from prerenderer.models import CacheKey, RenderJob, ResolveResult, cache_key
from prerenderer.render.renderers import Renderer
from prerenderer.storage.snapshots import SnapshotStore

logger = get_logger("coordinator")


class RenderCoordinator:
    """De-duplicating, concurrency-limited render cache.

    Args:
        store: Snapshot store consulted before rendering and written after.
        renderer: Backend that produces markup for a path.
        render_timeout: Seconds before a render is aborted.
        max_concurrent_renders: Renders allowed to run at the same time.
        overload_policy: ``"queue"`` waits up to *queue_timeout* seconds for
            a slot; ``"fail"`` raises :class:`RenderOverloaded` at once.
        ttl_ms: TTL stored with each new snapshot (``None`` = store default).
    """

    def __init__(
        self,
        store: SnapshotStore,
        renderer: Renderer,
        *,
        render_timeout: float = 30.0,
        max_concurrent_renders: int = 4,
        overload_policy: str = "queue",
        queue_timeout: float = 10.0,
        ttl_ms: Optional[int] = None,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.render_timeout = render_timeout
        self.max_concurrent_renders = max_concurrent_renders
        self.overload_policy = overload_policy
        self.queue_timeout = queue_timeout
        self.ttl_ms = ttl_ms
        self._jobs: dict[CacheKey, RenderJob] = {}
        self._slots = asyncio.Semaphore(max_concurrent_renders)
        self._active = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def in_flight(self) -> list[CacheKey]:
        return sorted(self._jobs)

    @property
    def active_renders(self) -> int:
        return self._active

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def resolve(self, request: Union[str, Any]) -> ResolveResult:
        """Return markup for *request* (a path or an object with ``.path``).

        Raises:
            RenderTimeout, RenderNavigationError, RenderCrash: The render ran
                and failed.  Nothing is cached; the next call retries.
            RenderOverloaded: No render slot was available.
        """
        path = request if isinstance(request, str) else request.path
        key = cache_key(path)

        job = self._jobs.get(key)
        if job is None:
            try:
                record = await self.store.get(key)
            except StorageError as exc:
                logger.warning("Snapshot lookup for %s failed, rendering instead: %s", key, exc)
                record = None
            if record is not None:
                logger.debug("Serving %s from cache", key)
                return ResolveResult(html=record.html, served_from="cache")

            # Another caller may have registered while we awaited the store.
            job = self._jobs.get(key)
            if job is None:
                job = self._start(key)
        else:
            logger.debug("Joining in-flight render for %s", key)

        return await asyncio.shield(job.future)

    async def invalidate(self, path: str) -> None:
        await self.store.invalidate(cache_key(path))

    async def invalidate_all(self) -> None:
        await self.store.invalidate_all()

    async def close(self) -> None:
        """Cancel renders still in flight and release the renderer."""
        jobs = list(self._jobs.values())
        tasks = [job.task for job in jobs if job.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        # A task cancelled before its first step never reaches _run
        for job in jobs:
            self._finish(job, exc=RenderTimeout(f"Render of {job.key} was cancelled"))
        await self.renderer.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _start(self, key: CacheKey) -> RenderJob:
        loop = asyncio.get_running_loop()
        job = RenderJob(key=key, future=loop.create_future())
        self._jobs[key] = job
        job.task = loop.create_task(self._run(job), name=f"render:{key}")
        # Mark the exception retrieved so a failure nobody awaits is not reported
        job.future.add_done_callback(lambda f: f.cancelled() or f.exception())
        return job

    async def _acquire_slot(self, key: CacheKey) -> None:
        if not self._slots.locked():
            await self._slots.acquire()
            return
        if self.overload_policy == "fail":
            raise RenderOverloaded(
                f"{self.max_concurrent_renders} renders already running; rejected {key}"
            )
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.queue_timeout)
        except asyncio.TimeoutError as exc:
            raise RenderOverloaded(
                f"No render slot for {key} within {self.queue_timeout:.1f}s"
            ) from exc

    async def _render(self, key: CacheKey) -> str:
        await self._acquire_slot(key)
        self._active += 1
        try:
            started = time.monotonic()
            try:
                html = await asyncio.wait_for(
                    self.renderer.render(key, self.render_timeout),
                    timeout=self.render_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise RenderTimeout(
                    f"Render of {key} exceeded {self.render_timeout:.1f}s"
                ) from exc
            logger.info(
                "Rendered %s with %s in %.0f ms",
                key, self.renderer.name, (time.monotonic() - started) * 1000,
            )
            return html
        finally:
            self._active -= 1
            self._slots.release()

    async def _run(self, job: RenderJob) -> None:
        key = job.key
        try:
            html = await self._render(key)
            try:
                await self.store.put(key, html, self.ttl_ms)
            except StorageError as exc:
                logger.warning("Rendered %s but could not store the snapshot: %s", key, exc)
        except RenderError as exc:
            logger.warning("Render of %s failed: %s", key, exc)
            self._finish(job, exc=exc)
        except asyncio.CancelledError:
            self._finish(job, exc=RenderTimeout(f"Render of {key} was cancelled"))
            raise
        except Exception as exc:  # renderer bug; joined callers must still wake up
            logger.exception("Unexpected error rendering %s", key)
            crash = RenderCrash(f"Renderer {self.renderer.name} crashed on {key}: {exc}")
            crash.__cause__ = exc
            self._finish(job, exc=crash)
        else:
            self._finish(job, result=ResolveResult(html=html, served_from="render"))

    def _finish(
        self,
        job: RenderJob,
        result: Optional[ResolveResult] = None,
        exc: Optional[BaseException] = None,
    ) -> None:
        if self._jobs.get(job.key) is job:
            del self._jobs[job.key]
        if job.future.done():
            return
        if exc is not None:
            job.future.set_exception(exc)
        else:
            job.future.set_result(result)
