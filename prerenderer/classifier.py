"""Decide whether a request should be served a prerendered snapshot.

:func:`classify` is pure: it reads the request and the settings and returns
a fresh :class:`ClassificationResult`.  Checks run in a fixed order and the
first failing one determines the rejection reason.
"""

from __future__ import annotations

import posixpath
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import urlsplit

from prerenderer.config import Settings
from prerenderer.models import ClassificationResult, ProxyContext, RejectionReason


def path_extension(path: str) -> str:
    """Return the lower-cased extension of *path*'s last segment.

    Query string and fragment are ignored.  Extensionless routes, directory
    paths and dot-files give ``""``.

    >>> path_extension("/assets/Logo.PNG?v=3")
    '.png'
    >>> path_extension("/about")
    ''
    """
    bare = urlsplit(path).path
    segment = bare.rsplit("/", 1)[-1]
    return posixpath.splitext(segment)[1].lower()


def _is_http_request(request: Any) -> bool:
    """Minimal shape check: a method, a path and a header mapping."""
    method = getattr(request, "method", None)
    path = getattr(request, "path", None)
    headers = getattr(request, "headers", None)
    if not isinstance(method, str) or not method:
        return False
    if not isinstance(path, str):
        return False
    if not isinstance(headers, Mapping):
        return False
    return getattr(request, "protocol_valid", True) is not False


def _header(request: Any, name: str) -> Optional[str]:
    lookup = getattr(request, "header", None)
    if callable(lookup):
        return lookup(name)
    for key, value in request.headers.items():
        if str(key).lower() == name:
            return value
    return None


def is_bot_user_agent(user_agent: str, settings: Settings) -> bool:
    return any(p.search(user_agent) for p in settings.bot_user_agent_patterns)


def classify(
    request: Any,
    settings: Settings,
    proxy_context: Optional[ProxyContext] = None,
) -> ClassificationResult:
    """Classify *request* for prerendering.

    Args:
        request: Usually an :class:`~prerenderer.models.IncomingRequest`;
            anything exposing ``method``, ``path`` and ``headers`` works.
        settings: Supplies extensions, path rules and bot patterns.
        proxy_context: A trusted label from the upstream proxy (see
            :func:`prerenderer.proxy_signal.interpret`).  When given it
            replaces the user-agent checks; method, extension and path
            checks still apply.

    Returns:
        An accepted result, or a rejection carrying the first failing reason.
    """
    if request is None:
        return ClassificationResult.reject(RejectionReason.NO_REQUEST)

    if not _is_http_request(request):
        return ClassificationResult.reject(RejectionReason.REJECTED_REQUEST)

    if request.method.upper() != "GET":
        return ClassificationResult.reject(RejectionReason.REJECTED_METHOD)

    if proxy_context is ProxyContext.STATIC:
        return ClassificationResult.reject(RejectionReason.REJECTED_USER_AGENT)

    if proxy_context is not ProxyContext.PRERENDER:
        user_agent = _header(request, "user-agent")
        if not user_agent:
            return ClassificationResult.reject(RejectionReason.NO_USER_AGENT)
        if not is_bot_user_agent(user_agent, settings):
            return ClassificationResult.reject(RejectionReason.REJECTED_USER_AGENT)

    if path_extension(request.path) not in settings.prerenderable_extensions:
        return ClassificationResult.reject(RejectionReason.REJECTED_EXTENSION)

    allowed = settings.prerenderable_path_regexps
    if allowed and not any(p.search(request.path) for p in allowed):
        return ClassificationResult.reject(RejectionReason.REJECTED_PATH)
    if any(p.search(request.path) for p in settings.blocked_path_regexps):
        return ClassificationResult.reject(RejectionReason.REJECTED_PATH)

    return ClassificationResult.accept()
