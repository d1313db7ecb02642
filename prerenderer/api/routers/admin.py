"""Snapshot administration endpoints.

Routes (mounted under ``/_prerender``)
--------------------------------------
GET    /status                     Settings summary and renders in flight
GET    /snapshots                  List stored cache keys
GET    /snapshots/inspect?path=    Status of one snapshot (fresh|stale|absent)
DELETE /snapshots?path=            Invalidate one snapshot, or all without ``path``
POST   /render                     Body: {"path": "/about"} → resolve now
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from prerenderer.errors import RenderError, RenderOverloaded, StorageError
from prerenderer.models import cache_key
from prerenderer.prerenderer import Prerenderer

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class RenderRequest(BaseModel):
    path: str


class RenderResponse(BaseModel):
    key: str
    served_from: str
    bytes: int


class SnapshotInfo(BaseModel):
    key: str
    status: str
    rendered_at: Optional[float] = None
    ttl_ms: Optional[int] = None
    bytes: int = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _prerenderer(request: Request) -> Prerenderer:
    return request.app.state.prerenderer


def _storage_error(exc: StorageError) -> HTTPException:
    return HTTPException(status_code=500, detail=f"Snapshot storage failed: {exc}")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/status")
def status(request: Request) -> dict[str, Any]:
    p = _prerenderer(request)
    config = p.get_config()
    return {
        "renderer": config.renderer,
        "snapshots_driver": config.snapshots_driver,
        "snapshots_directory": str(config.snapshots_directory),
        "max_concurrent_renders": config.max_concurrent_renders,
        "active_renders": p.coordinator.active_renders,
        "in_flight": p.coordinator.in_flight(),
    }


@router.get("/snapshots")
async def list_snapshots(request: Request) -> list[str]:
    try:
        return await _prerenderer(request).store.keys()
    except StorageError as exc:
        raise _storage_error(exc) from exc


@router.get("/snapshots/inspect", response_model=SnapshotInfo)
async def inspect_snapshot(request: Request, path: str = Query(...)) -> dict[str, Any]:
    try:
        record = await _prerenderer(request).store.inspect(cache_key(path))
    except StorageError as exc:
        raise _storage_error(exc) from exc
    return {
        "key": record.key,
        "status": record.status.value,
        "rendered_at": record.rendered_at or None,
        "ttl_ms": record.ttl_ms,
        "bytes": len(record.html.encode("utf-8")),
    }


@router.delete("/snapshots", status_code=204)
async def purge_snapshots(request: Request, path: Optional[str] = Query(None)) -> None:
    """Invalidate the snapshot for *path*, or every snapshot when omitted."""
    coordinator = _prerenderer(request).coordinator
    try:
        if path is None:
            await coordinator.invalidate_all()
        else:
            await coordinator.invalidate(path)
    except StorageError as exc:
        raise _storage_error(exc) from exc


@router.post("/render", response_model=RenderResponse)
async def render(body: RenderRequest, request: Request) -> dict[str, Any]:
    """Resolve *path* now (from cache when fresh), e.g. to warm the cache."""
    try:
        result = await _prerenderer(request).resolve(body.path)
    except RenderOverloaded as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except RenderError as exc:
        raise HTTPException(status_code=502, detail=f"Render failed: {exc}") from exc
    return {
        "key": cache_key(body.path),
        "served_from": result.served_from,
        "bytes": len(result.html.encode("utf-8")),
    }
