"""FastAPI application factory.

Lifespan
--------
On startup the app initialises a single :class:`Prerenderer` (shared across
all requests via ``request.app.state.prerenderer``).  On shutdown it cancels
renders still in flight and closes the renderer.

Layout
------
    /_prerender/*  — snapshot administration (never prerendered)
    /*             — static files from ``settings.static_directory``, if set

Every other request first goes through :class:`PrerenderMiddleware`, which
answers bots with snapshots and lets everything else through.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from prerenderer.api.middleware import PrerenderMiddleware
from prerenderer.api.routers import admin as admin_router
from prerenderer.config import Settings
from prerenderer.config import settings as default_settings
from prerenderer.prerenderer import Prerenderer

ADMIN_PREFIX = "/_prerender"


def create_app(
    config: Optional[Settings] = None,
    prerenderer: Optional[Prerenderer] = None,
) -> FastAPI:
    """Return a fully-configured FastAPI application instance.

    Args:
        config: Settings for a new :class:`Prerenderer`; ignored when
            *prerenderer* is given.
        prerenderer: Use this (not yet initialised) instance instead.
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        instance = prerenderer or Prerenderer(config)
        await instance.initialize()
        app.state.prerenderer = instance
        try:
            yield
        finally:
            await instance.close()

    app = FastAPI(
        title="Prerenderer",
        description=(
            "Serves pre-rendered HTML snapshots to crawlers and passes browser "
            "traffic through to the live application."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        PrerenderMiddleware,
        prerenderer=lambda: getattr(app.state, "prerenderer", None),
        exclude_prefixes=(ADMIN_PREFIX,),
    )

    app.include_router(admin_router.router, prefix=ADMIN_PREFIX, tags=["admin"])

    static_dir = (prerenderer.config if prerenderer else config).static_directory
    if static_dir is not None:
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app


# Module-level instance used by uvicorn:
#   uvicorn prerenderer.api.app:app --reload
app = create_app()
