"""Read the bot / non-bot decision made by an upstream smart proxy.

A proxy in front of the app (nginx with a user-agent map, for example) can
label each forwarded request::

    proxy_set_header X-Prerender-Context $prerender_context;  # prerender|static
    proxy_set_header X-Prerender-Token   "<shared token>";

The label is advisory input to :func:`prerenderer.classifier.classify`.
It is only honoured when ``settings.trust_proxy_signal`` is on, and, if a
shared token is configured, when the request carries that token too.
"""

from __future__ import annotations

import hmac
from typing import Any, Optional

from prerenderer.config import Settings
from prerenderer.models import ProxyContext


def _header(request: Any, name: str) -> Optional[str]:
    headers = getattr(request, "headers", None)
    if not hasattr(headers, "items"):
        return None
    for key, value in headers.items():
        if str(key).lower() == name:
            return value
    return None


def interpret(request: Any, settings: Settings) -> Optional[ProxyContext]:
    """Return the trusted :class:`ProxyContext` of *request*, or ``None``."""
    if request is None or not settings.trust_proxy_signal:
        return None

    label = _header(request, settings.proxy_context_header)
    if not label:
        return None
    try:
        context = ProxyContext(label.strip().lower())
    except ValueError:
        return None

    if settings.proxy_shared_token:
        token = _header(request, settings.proxy_token_header) or ""
        if not hmac.compare_digest(token.encode(), settings.proxy_shared_token.encode()):
            return None

    return context
