"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from prerenderer.api import app

    uvicorn prerenderer.api:app --reload
"""

from prerenderer.api.app import app, create_app
from prerenderer.api.middleware import PrerenderMiddleware

__all__ = ["app", "create_app", "PrerenderMiddleware"]
