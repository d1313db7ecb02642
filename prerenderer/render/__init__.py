"""Render package — rendering backends and the de-duplicating coordinator."""

from prerenderer.render.coordinator import RenderCoordinator
from prerenderer.render.renderers import HttpRenderer, PlaywrightRenderer, Renderer, get_renderer

__all__ = [
    "Renderer",
    "PlaywrightRenderer",
    "HttpRenderer",
    "get_renderer",
    "RenderCoordinator",
]
