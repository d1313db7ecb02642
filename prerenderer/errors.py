"""Exception hierarchy for the prerenderer.

Classification rejections are *not* errors and never appear here; they are
returned as :class:`~prerenderer.models.ClassificationResult` values.

Everything below :class:`RenderError` and :class:`StorageError` is
recoverable: the caller serves the live page instead.  Only
:class:`ConfigError` is fatal and aborts startup.
"""

from __future__ import annotations


class PrerenderError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(PrerenderError):
    """Invalid configuration or an unusable snapshots directory."""


class StorageError(PrerenderError):
    """A storage driver operation failed.

    The original exception (usually an :class:`OSError`) is kept on
    ``cause`` and chained via ``raise ... from``.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RenderError(PrerenderError):
    """Rendering was attempted and did not produce markup."""


class RenderTimeout(RenderError):
    """The render exceeded ``render_timeout_ms`` and was aborted."""


class RenderNavigationError(RenderError):
    """The renderer could not load the page (network error, 4xx/5xx)."""


class RenderCrash(RenderError):
    """The rendering engine itself failed."""


class RenderOverloaded(RenderError):
    """No render slot became available under the configured policy."""
