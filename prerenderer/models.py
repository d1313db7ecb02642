"""Data models for the prerender pipeline.

Plain dataclasses and enums; no I/O happens here.
"""

from __future__ import annotations

import asyncio
import posixpath
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

CacheKey = str


class RejectionReason(str, Enum):
    NO_REQUEST = "no-request"
    REJECTED_REQUEST = "rejected-request"
    REJECTED_METHOD = "rejected-method"
    NO_USER_AGENT = "no-user-agent"
    REJECTED_USER_AGENT = "rejected-user-agent"
    REJECTED_EXTENSION = "rejected-extension"
    REJECTED_PATH = "rejected-path"


class ProxyContext(str, Enum):
    """Label attached by the upstream smart proxy to a forwarded request."""

    PRERENDER = "prerender"
    STATIC = "static"


class SnapshotStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


@dataclass(frozen=True)
class IncomingRequest:
    """An HTTP request as seen by the classifier.

    Header names are lower-cased on construction so lookups are
    case-insensitive.  ``path`` is the raw request target and may carry a
    query string.
    """

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    protocol_valid: bool = True

    def __post_init__(self) -> None:
        normalised = {str(k).lower(): str(v) for k, v in dict(self.headers).items()}
        object.__setattr__(self, "headers", normalised)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def user_agent(self) -> Optional[str]:
        return self.header("user-agent")


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of a single classification.

    Build instances with :meth:`accept` / :meth:`reject` only; the pair keeps
    ``reason`` set exactly when ``accepted`` is false.
    """

    accepted: bool
    reason: Optional[RejectionReason] = None

    def __post_init__(self) -> None:
        if self.accepted == (self.reason is not None):
            raise ValueError("reason must be set if and only if the request is rejected")

    @classmethod
    def accept(cls) -> ClassificationResult:
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: RejectionReason) -> ClassificationResult:
        return cls(accepted=False, reason=reason)

    def __bool__(self) -> bool:
        return self.accepted


@dataclass
class SnapshotRecord:
    key: CacheKey
    html: str
    rendered_at: float
    ttl_ms: Optional[int] = None
    status: SnapshotStatus = SnapshotStatus.FRESH

    def age_ms(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return (now - self.rendered_at) * 1000

    def is_expired(self, now: Optional[float] = None) -> bool:
        """``True`` once the TTL has elapsed.  A falsy TTL never expires."""
        if not self.ttl_ms:
            return False
        return self.age_ms(now) >= self.ttl_ms

    def metadata(self) -> dict[str, Any]:
        return {"key": self.key, "rendered_at": self.rendered_at, "ttl_ms": self.ttl_ms}


@dataclass
class RenderJob:
    """A render currently executing.  Lives only in the coordinator registry."""

    key: CacheKey
    future: "asyncio.Future[ResolveResult]"
    started_at: float = field(default_factory=time.monotonic)
    task: Optional["asyncio.Task[None]"] = None


@dataclass(frozen=True)
class ResolveResult:
    html: str
    served_from: str  # "cache" | "render"


def cache_key(path: str) -> CacheKey:
    """Return the normalised cache key for a request path or URL.

    Scheme and host are dropped, ``.``/``..`` and repeated slashes collapse,
    the fragment is discarded and a trailing slash is removed (except for
    the root).  The query string is kept with its parameters sorted so that
    ``?b=1&a=2`` and ``?a=2&b=1`` share a snapshot.
    """
    parts = urlsplit(path or "/")
    raw_path = parts.path or "/"
    if not raw_path.startswith("/"):
        raw_path = "/" + raw_path

    normalised = posixpath.normpath(raw_path)
    # normpath keeps a leading double slash (POSIX rule)
    if normalised.startswith("//"):
        normalised = "/" + normalised.lstrip("/")
    if normalised != "/":
        normalised = normalised.rstrip("/")

    if parts.query:
        query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
        return f"{normalised}?{query}"
    return normalised
