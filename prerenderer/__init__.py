"""Serve pre-rendered HTML snapshots to crawlers; pass browsers through live.

Public re-exports so callers can write::

    from prerenderer import Prerenderer, Settings
"""

from prerenderer.config import Settings, settings
from prerenderer.models import (
    ClassificationResult,
    IncomingRequest,
    ProxyContext,
    RejectionReason,
    ResolveResult,
    cache_key,
)
from prerenderer.prerenderer import Prerenderer

__all__ = [
    "Prerenderer",
    "Settings",
    "settings",
    "IncomingRequest",
    "ClassificationResult",
    "RejectionReason",
    "ProxyContext",
    "ResolveResult",
    "cache_key",
]
