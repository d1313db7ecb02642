"""Prerenderer CLI — entry-point for all operations.

Usage:
    prerenderer --help

Commands:
    serve      → run the HTTP app (middleware + admin API) under uvicorn
    check      → classify a single request and print the decision
    render     → resolve a path (cache or render) and store the snapshot
    snapshots  → list / inspect / purge stored snapshots
"""

from __future__ import annotations

import asyncio

import typer

from prerenderer.config import settings
from prerenderer.errors import ConfigError, RenderError
from prerenderer.models import IncomingRequest, cache_key
from prerenderer.prerenderer import Prerenderer

from cli.commands.snapshots import snapshots_app

app = typer.Typer(
    name="prerenderer",
    help="Serve pre-rendered HTML snapshots to crawlers.",
    no_args_is_help=True,
)
app.add_typer(snapshots_app, name="snapshots")

_GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8080, help="Bind port."),
    reload: bool = typer.Option(False, help="Reload on code changes."),
) -> None:
    """Run the prerender app under uvicorn."""
    import uvicorn

    typer.echo(f"[serve] Snapshots in {settings.snapshots_directory} (driver={settings.snapshots_driver})")
    uvicorn.run("prerenderer.api.app:app", host=host, port=port, reload=reload)


@app.command("check")
def check(
    path: str = typer.Option("/", help="Request path (may include a query string)."),
    user_agent: str = typer.Option(_GOOGLEBOT_UA, "--user-agent", help="User-Agent header."),
    method: str = typer.Option("GET", help="HTTP method."),
) -> None:
    """Print whether a request would be prerendered, and why not."""
    p = Prerenderer(settings)
    request = IncomingRequest(method=method, path=path, headers={"user-agent": user_agent})
    result = p.evaluate(request)
    if result.accepted:
        typer.echo(f"[check] {method} {path} → prerender (key {cache_key(path)})")
    else:
        typer.echo(f"[check] {method} {path} → pass through ({result.reason.value})")


@app.command("render")
def render(
    path: str = typer.Option(..., help="Request path to render, e.g. /about."),
    show: bool = typer.Option(False, help="Print the markup."),
) -> None:
    """Resolve PATH through the cache, rendering it if needed."""

    async def _resolve():
        p = Prerenderer(settings)
        await p.initialize()
        try:
            return await p.resolve(path)
        finally:
            await p.close()

    typer.echo(f"[render] Resolving {path!r} with {settings.renderer} …")
    try:
        result = asyncio.run(_resolve())
    except (ConfigError, RenderError) as e:
        typer.echo(f"[render] {type(e).__name__}: {e}")
        raise typer.Exit(code=1)

    typer.echo(f"[render] Served from {result.served_from}, {len(result.html.encode('utf-8'))} bytes")
    if show:
        typer.echo("")
        typer.echo(result.html)


if __name__ == "__main__":
    app()
