"""Tests for the prerenderer CLI (check, render and the snapshots group)."""

import asyncio

import pytest
from typer.testing import CliRunner

from prerenderer.errors import RenderCrash
from prerenderer.prerenderer import Prerenderer
from prerenderer.storage import SnapshotStore, get_driver

from cli.main import app
from tests.helpers import BROWSER_UA, FakeRenderer, make_settings

runner = CliRunner()


@pytest.fixture
def cli_settings(tmp_path, monkeypatch):
    """Point every CLI module at an isolated snapshots directory."""
    isolated = make_settings(tmp_path)
    monkeypatch.setattr("cli.main.settings", isolated)
    monkeypatch.setattr("cli.commands.snapshots.settings", isolated)
    return isolated


def _seed(settings, *keys: str) -> None:
    store = SnapshotStore(get_driver("fs", settings.snapshots_directory), default_ttl_ms=60_000)

    async def _put_all():
        for key in keys:
            await store.put(key, f"<p>{key}</p>")

    asyncio.run(_put_all())


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

def test_check_bot_is_prerendered(cli_settings):
    result = runner.invoke(app, ["check", "--path", "/about/"])
    assert result.exit_code == 0
    assert "prerender (key /about)" in result.stdout


def test_check_asset_passes_through(cli_settings):
    result = runner.invoke(app, ["check", "--path", "/pixel.png"])
    assert result.exit_code == 0
    assert "pass through (rejected-extension)" in result.stdout


def test_check_browser_passes_through(cli_settings):
    result = runner.invoke(app, ["check", "--user-agent", BROWSER_UA])
    assert "pass through (rejected-user-agent)" in result.stdout


def test_check_post_passes_through(cli_settings):
    result = runner.invoke(app, ["check", "--method", "POST"])
    assert "pass through (rejected-method)" in result.stdout


# ---------------------------------------------------------------------------
# render
# ---------------------------------------------------------------------------

def _with_renderer(monkeypatch, renderer):
    monkeypatch.setattr("cli.main.Prerenderer", lambda config: Prerenderer(config, renderer=renderer))


def test_render_then_cache(cli_settings, monkeypatch):
    renderer = FakeRenderer()
    _with_renderer(monkeypatch, renderer)

    first = runner.invoke(app, ["render", "--path", "/about", "--show"])
    assert first.exit_code == 0
    assert "Served from render" in first.stdout
    assert 'id="app"' in first.stdout

    second = runner.invoke(app, ["render", "--path", "/about"])
    assert "Served from cache" in second.stdout
    assert renderer.calls == ["/about"]


def test_render_reports_failure(cli_settings, monkeypatch):
    _with_renderer(monkeypatch, FakeRenderer(error=RenderCrash("browser died")))
    result = runner.invoke(app, ["render", "--path", "/"])
    assert result.exit_code == 1
    assert "RenderCrash: browser died" in result.stdout


# ---------------------------------------------------------------------------
# snapshots
# ---------------------------------------------------------------------------

def test_snapshots_list_empty(cli_settings):
    result = runner.invoke(app, ["snapshots", "list"])
    assert result.exit_code == 0
    assert "No snapshots" in result.stdout


def test_snapshots_list(cli_settings):
    _seed(cli_settings, "/a", "/b")
    result = runner.invoke(app, ["snapshots", "list"])
    assert result.exit_code == 0
    assert "/a" in result.stdout
    assert "/b" in result.stdout
    assert "fresh" in result.stdout


def test_snapshots_inspect(cli_settings):
    _seed(cli_settings, "/about")
    result = runner.invoke(app, ["snapshots", "inspect", "--path", "/about/"])
    assert result.exit_code == 0
    assert "Key    : /about" in result.stdout
    assert "Status : fresh" in result.stdout


def test_snapshots_inspect_absent(cli_settings):
    result = runner.invoke(app, ["snapshots", "inspect", "--path", "/nope"])
    assert result.exit_code == 0
    assert "Status : absent" in result.stdout
    assert "Bytes" not in result.stdout


def test_snapshots_purge_one(cli_settings):
    _seed(cli_settings, "/a", "/b")
    result = runner.invoke(app, ["snapshots", "purge", "--path", "/a"])
    assert result.exit_code == 0
    assert "Purged /a." in result.stdout

    listing = runner.invoke(app, ["snapshots", "list"]).stdout
    assert "/a" not in listing
    assert "/b" in listing


def test_snapshots_purge_all_needs_confirmation(cli_settings):
    _seed(cli_settings, "/a")
    result = runner.invoke(app, ["snapshots", "purge"], input="n\n")
    assert result.exit_code == 1
    assert "/a" in runner.invoke(app, ["snapshots", "list"]).stdout


def test_snapshots_purge_all(cli_settings):
    _seed(cli_settings, "/a", "/b")
    result = runner.invoke(app, ["snapshots", "purge", "--yes"])
    assert result.exit_code == 0
    assert "Purged all snapshots." in result.stdout
    assert "No snapshots" in runner.invoke(app, ["snapshots", "list"]).stdout
