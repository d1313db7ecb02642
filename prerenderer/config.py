"""Centralised settings for the prerenderer.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported), or by passing keyword
arguments to :class:`Settings` directly (tests do this).

List-valued variables accept either a JSON array or a comma-separated
string::

    PRERENDER_EXTENSIONS=",.html,.htm"
    PRERENDER_PATH_REGEXPS='["^/blog/", "^/about$"]'
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Pattern, Sequence, Union

from dotenv import load_dotenv

from prerenderer.errors import ConfigError

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

PatternLike = Union[str, Pattern[str]]

SNAPSHOTS_DRIVERS = ("fs", "memory")
RENDERERS = ("playwright", "http")
OVERLOAD_POLICIES = ("queue", "fail")

DEFAULT_PRERENDERABLE_EXTENSIONS = [
    "",
    ".html",
    ".htm",
    ".xhtml",
    ".php",
    ".asp",
    ".aspx",
    ".jsp",
]

DEFAULT_BOT_USER_AGENTS = [
    r"googlebot",
    r"google-inspectiontool",
    r"adsbot-google",
    r"mediapartners-google",
    r"bingbot",
    r"yandex",
    r"baiduspider",
    r"duckduckbot",
    r"slurp",
    r"applebot",
    r"facebookexternalhit",
    r"facebookcatalog",
    r"twitterbot",
    r"linkedinbot",
    r"pinterest",
    r"slackbot",
    r"discordbot",
    r"telegrambot",
    r"whatsapp",
    r"embedly",
    r"quora link preview",
    r"showyoubot",
    r"outbrain",
    r"rogerbot",
    r"vkshare",
    r"w3c_validator",
    r"redditbot",
    r"skypeuripreview",
    r"nuzzel",
    r"qwantify",
    r"petalbot",
    r"semrushbot",
    r"ahrefsbot",
]


def _env_list(name: str, default: Sequence[str]) -> list[str]:
    raw = os.environ.get(name)
    if raw is None:
        return list(default)
    raw = raw.strip()
    if raw.startswith("["):
        try:
            values = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{name} is not a valid JSON array: {exc}") from exc
        return [str(v) for v in values]
    return [part.strip() for part in raw.split(",")] if raw else []


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional(name: str) -> Optional[str]:
    return os.environ.get(name) or None


def _normalise_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def _compile(patterns: Sequence[PatternLike], flags: int, setting: str) -> list[Pattern[str]]:
    compiled: list[Pattern[str]] = []
    for pattern in patterns:
        try:
            if isinstance(pattern, re.Pattern):
                if flags and not pattern.flags & flags:
                    pattern = re.compile(pattern.pattern, pattern.flags | flags)
                compiled.append(pattern)
            else:
                compiled.append(re.compile(pattern, flags))
        except re.error as exc:
            raise ConfigError(f"Invalid regular expression in {setting}: {pattern!r} ({exc})") from exc
    return compiled


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Snapshot storage
    # ------------------------------------------------------------------
    snapshots_directory: Path = field(
        default_factory=lambda: Path(
            os.environ.get("PRERENDER_SNAPSHOTS_DIR", Path.home() / ".prerender_snapshots")
        )
    )
    snapshots_driver: str = field(
        default_factory=lambda: os.environ.get("PRERENDER_SNAPSHOTS_DRIVER", "fs")
    )
    snapshot_ttl_ms: int = field(
        default_factory=lambda: _env_int("PRERENDER_SNAPSHOT_TTL_MS", 24 * 60 * 60 * 1000)
    )

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------
    prerenderable_extensions: Sequence[str] = field(
        default_factory=lambda: _env_list("PRERENDER_EXTENSIONS", DEFAULT_PRERENDERABLE_EXTENSIONS)
    )
    prerenderable_path_regexps: Sequence[PatternLike] = field(
        default_factory=lambda: _env_list("PRERENDER_PATH_REGEXPS", [])
    )
    blocked_path_regexps: Sequence[PatternLike] = field(
        default_factory=lambda: _env_list("PRERENDER_BLOCKED_PATH_REGEXPS", [])
    )
    bot_user_agent_patterns: Sequence[PatternLike] = field(
        default_factory=lambda: _env_list("PRERENDER_BOT_USER_AGENTS", DEFAULT_BOT_USER_AGENTS)
    )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    renderer: str = field(
        default_factory=lambda: os.environ.get("PRERENDER_RENDERER", "playwright")
    )
    render_base_url: str = field(
        default_factory=lambda: os.environ.get("PRERENDER_RENDER_BASE_URL", "http://127.0.0.1:8000")
    )
    render_timeout_ms: int = field(
        default_factory=lambda: _env_int("PRERENDER_RENDER_TIMEOUT_MS", 30000)
    )
    max_concurrent_renders: int = field(
        default_factory=lambda: _env_int("PRERENDER_MAX_CONCURRENT_RENDERS", 4)
    )
    overload_policy: str = field(
        default_factory=lambda: os.environ.get("PRERENDER_OVERLOAD_POLICY", "queue")
    )
    render_queue_timeout_ms: int = field(
        default_factory=lambda: _env_int("PRERENDER_RENDER_QUEUE_TIMEOUT_MS", 10000)
    )

    # ------------------------------------------------------------------
    # Upstream smart proxy
    # ------------------------------------------------------------------
    trust_proxy_signal: bool = field(
        default_factory=lambda: _env_bool("PRERENDER_TRUST_PROXY_SIGNAL", False)
    )
    proxy_context_header: str = field(
        default_factory=lambda: os.environ.get("PRERENDER_PROXY_CONTEXT_HEADER", "x-prerender-context")
    )
    proxy_token_header: str = field(
        default_factory=lambda: os.environ.get("PRERENDER_PROXY_TOKEN_HEADER", "x-prerender-token")
    )
    proxy_shared_token: Optional[str] = field(
        default_factory=lambda: _env_optional("PRERENDER_PROXY_SHARED_TOKEN")
    )

    # ------------------------------------------------------------------
    # Logging / serving
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("PRERENDER_LOG_LEVEL", "INFO")
    )
    log_file: Optional[Path] = field(
        default_factory=lambda: Path(os.environ["PRERENDER_LOG_FILE"]) if os.environ.get("PRERENDER_LOG_FILE") else None
    )
    static_directory: Optional[Path] = field(
        default_factory=lambda: Path(os.environ["PRERENDER_STATIC_DIR"]) if os.environ.get("PRERENDER_STATIC_DIR") else None
    )

    def __post_init__(self) -> None:
        self.snapshots_directory = Path(self.snapshots_directory).expanduser()
        self.prerenderable_extensions = frozenset(
            _normalise_extension(e) for e in self.prerenderable_extensions
        )
        self.prerenderable_path_regexps = _compile(
            self.prerenderable_path_regexps, 0, "prerenderable_path_regexps"
        )
        self.blocked_path_regexps = _compile(self.blocked_path_regexps, 0, "blocked_path_regexps")
        self.bot_user_agent_patterns = _compile(
            [p for p in self.bot_user_agent_patterns if p], re.IGNORECASE, "bot_user_agent_patterns"
        )
        self.proxy_context_header = self.proxy_context_header.lower()
        self.proxy_token_header = self.proxy_token_header.lower()
        self.validate()

    def validate(self) -> None:
        """Raise :class:`ConfigError` for values that can never work."""
        if self.snapshots_driver not in SNAPSHOTS_DRIVERS:
            raise ConfigError(
                f"Unknown snapshots_driver {self.snapshots_driver!r}; use one of {SNAPSHOTS_DRIVERS}"
            )
        if self.renderer not in RENDERERS:
            raise ConfigError(f"Unknown renderer {self.renderer!r}; use one of {RENDERERS}")
        if self.overload_policy not in OVERLOAD_POLICIES:
            raise ConfigError(
                f"Unknown overload_policy {self.overload_policy!r}; use one of {OVERLOAD_POLICIES}"
            )
        if self.max_concurrent_renders < 1:
            raise ConfigError("max_concurrent_renders must be at least 1")
        if self.render_timeout_ms <= 0:
            raise ConfigError("render_timeout_ms must be positive")
        if self.render_queue_timeout_ms < 0:
            raise ConfigError("render_queue_timeout_ms must not be negative")
        if self.snapshot_ttl_ms < 0:
            raise ConfigError("snapshot_ttl_ms must not be negative (0 disables expiry)")

    @property
    def render_timeout(self) -> float:
        """Render timeout in seconds."""
        return self.render_timeout_ms / 1000

    @property
    def render_queue_timeout(self) -> float:
        return self.render_queue_timeout_ms / 1000

    def replace(self, **changes: Any) -> Settings:
        """Return a copy with *changes* applied (re-validated)."""
        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        values.update(changes)
        return Settings(**values)


# Module-level singleton, import this everywhere:
#   from prerenderer.config import settings
settings = Settings()
