"""ASGI middleware that serves snapshots to bots and passes everything else through.

Usage::

    app = FastAPI()
    app.add_middleware(PrerenderMiddleware, prerenderer=prerenderer)

Accepted requests get an ``HTMLResponse`` carrying
``X-Prerendered: cache|render``.  Rejected requests, and accepted ones whose
render fails, are handed to the wrapped app untouched.
"""

from __future__ import annotations

from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.types import ASGIApp

from prerenderer.models import IncomingRequest
from prerenderer.prerenderer import Prerenderer

PRERENDERED_HEADER = "X-Prerendered"


def to_incoming_request(request: Request) -> IncomingRequest:
    """Convert a Starlette request into the classifier's request model."""
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return IncomingRequest(
        method=request.method,
        path=target,
        headers=dict(request.headers),
    )


class PrerenderMiddleware(BaseHTTPMiddleware):
    """Serve prerendered markup to accepted requests.

    Args:
        app: The wrapped ASGI app.
        prerenderer: An initialised :class:`Prerenderer`, or a zero-argument
            callable returning one (lets the app create it in its lifespan).
        exclude_prefixes: Paths never prerendered (admin endpoints).
    """

    def __init__(
        self,
        app: ASGIApp,
        prerenderer: "Prerenderer | Callable[[], Optional[Prerenderer]]",
        exclude_prefixes: tuple[str, ...] = (),
    ) -> None:
        super().__init__(app)
        self._prerenderer = prerenderer
        self.exclude_prefixes = exclude_prefixes

    def _get_prerenderer(self) -> Optional[Prerenderer]:
        if isinstance(self._prerenderer, Prerenderer):
            return self._prerenderer
        return self._prerenderer()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        prerenderer = self._get_prerenderer()
        if prerenderer is None or request.url.path.startswith(self.exclude_prefixes):
            return await call_next(request)

        incoming = to_incoming_request(request)
        if not prerenderer.should_prerender(incoming):
            return await call_next(request)

        result = await prerenderer.prerender(incoming)
        if result is None:
            return await call_next(request)

        return HTMLResponse(result.html, headers={PRERENDERED_HEADER: result.served_from})
