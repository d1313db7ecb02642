"""Snapshot commands for listing, inspecting and purging stored renders."""

import asyncio
from datetime import datetime
from typing import Optional

import typer

from prerenderer.config import settings
from prerenderer.errors import PrerenderError
from prerenderer.models import SnapshotStatus, cache_key
from prerenderer.storage import SnapshotStore, get_driver

snapshots_app = typer.Typer(help="Inspect and purge stored snapshots.", no_args_is_help=True)


def _store() -> SnapshotStore:
    driver = get_driver(settings.snapshots_driver, settings.snapshots_directory)
    return SnapshotStore(driver, default_ttl_ms=settings.snapshot_ttl_ms)


@snapshots_app.command("list")
def snapshots_list() -> None:
    """List every stored snapshot with its status."""
    store = _store()

    async def _collect():
        return [await store.inspect(key) for key in await store.keys()]

    try:
        records = asyncio.run(_collect())
    except PrerenderError as e:
        typer.echo(f"[snapshots list] Error: {e}")
        raise typer.Exit(code=1)

    if not records:
        typer.echo(f"[snapshots list] No snapshots in {settings.snapshots_directory}.")
        return
    for r in records:
        rendered = datetime.fromtimestamp(r.rendered_at).isoformat(timespec="seconds")
        typer.echo(f"  [{r.status.value:5}]  {rendered}  {len(r.html):>8} B  {r.key}")


@snapshots_app.command("inspect")
def snapshots_inspect(
    path: str = typer.Option(..., help="Request path, e.g. /about."),
) -> None:
    """Show the status of the snapshot for one path."""
    key = cache_key(path)
    try:
        record = asyncio.run(_store().inspect(key))
    except PrerenderError as e:
        typer.echo(f"[snapshots inspect] Error: {e}")
        raise typer.Exit(code=1)

    typer.echo(f"[snapshots inspect] Key    : {key}")
    typer.echo(f"[snapshots inspect] Status : {record.status.value}")
    if record.status is not SnapshotStatus.ABSENT:
        typer.echo(f"[snapshots inspect] Age    : {record.age_ms() / 1000:.0f}s")
        typer.echo(f"[snapshots inspect] Bytes  : {len(record.html)}")


@snapshots_app.command("purge")
def snapshots_purge(
    path: Optional[str] = typer.Option(None, help="Only purge this path."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete one snapshot, or all of them."""
    store = _store()
    if path is None:
        if not yes:
            typer.confirm(f"Delete every snapshot in {settings.snapshots_directory}?", abort=True)
        action = store.invalidate_all()
        label = "all snapshots"
    else:
        action = store.invalidate(cache_key(path))
        label = cache_key(path)

    try:
        asyncio.run(action)
    except PrerenderError as e:
        typer.echo(f"[snapshots purge] Error: {e}")
        raise typer.Exit(code=1)
    typer.echo(f"[snapshots purge] Purged {label}.")
