"""Tests for the request classifier.

Each rejection reason is checked in isolation, then the ordering between
reasons (the first failing check wins).
"""

from __future__ import annotations

import re
from types import SimpleNamespace

import pytest

from prerenderer.classifier import classify, is_bot_user_agent, path_extension
from prerenderer.models import IncomingRequest, ProxyContext, RejectionReason

from tests.helpers import BROWSER_UA, GOOGLEBOT_UA, make_settings


def _get(path: str = "/", ua: str | None = GOOGLEBOT_UA, method: str = "GET") -> IncomingRequest:
    headers = {} if ua is None else {"User-Agent": ua}
    return IncomingRequest(method=method, path=path, headers=headers)


# ---------------------------------------------------------------------------
# path_extension
# ---------------------------------------------------------------------------

class TestPathExtension:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/", ""),
            ("/about", ""),
            ("/blog/", ""),
            ("/index.html", ".html"),
            ("/pixel.PNG", ".png"),
            ("/app.js?v=3", ".js"),
            ("/page.html#top", ".html"),
            ("/v1.2/docs", ""),
            ("/archive.tar.gz", ".gz"),
        ],
    )
    def test_extension(self, path: str, expected: str) -> None:
        assert path_extension(path) == expected


# ---------------------------------------------------------------------------
# Rejection taxonomy
# ---------------------------------------------------------------------------

class TestRejections:
    def test_no_request(self, settings) -> None:
        result = classify(None, settings)
        assert not result.accepted
        assert result.reason is RejectionReason.NO_REQUEST

    @pytest.mark.parametrize(
        "bogus",
        [
            123,
            "GET / HTTP/1.1",
            {"method": "GET", "path": "/", "headers": {}},
            SimpleNamespace(method="GET", path="/"),
            SimpleNamespace(method="", path="/", headers={}),
            SimpleNamespace(method="GET", path=None, headers={}),
            IncomingRequest(method="GET", path="/", headers={"user-agent": GOOGLEBOT_UA}, protocol_valid=False),
        ],
    )
    def test_rejected_request(self, settings, bogus) -> None:
        assert classify(bogus, settings).reason is RejectionReason.REJECTED_REQUEST

    def test_duck_typed_request_is_accepted(self, settings) -> None:
        request = SimpleNamespace(method="GET", path="/", headers={"User-Agent": GOOGLEBOT_UA})
        assert classify(request, settings).accepted

    @pytest.mark.parametrize("method", ["POST", "PUT", "HEAD", "DELETE"])
    def test_rejected_method(self, settings, method: str) -> None:
        assert classify(_get(method=method), settings).reason is RejectionReason.REJECTED_METHOD

    def test_lowercase_get_is_fine(self, settings) -> None:
        assert classify(_get(method="get"), settings).accepted

    def test_empty_user_agent(self, settings) -> None:
        assert classify(_get(ua=""), settings).reason is RejectionReason.NO_USER_AGENT

    def test_missing_user_agent(self, settings) -> None:
        assert classify(_get(ua=None), settings).reason is RejectionReason.NO_USER_AGENT

    def test_browser_user_agent(self, settings) -> None:
        assert classify(_get(ua=BROWSER_UA), settings).reason is RejectionReason.REJECTED_USER_AGENT

    def test_rejected_extension(self, tmp_path) -> None:
        settings = make_settings(tmp_path, prerenderable_extensions=["", ".html"])
        assert classify(_get("/pixel.png"), settings).reason is RejectionReason.REJECTED_EXTENSION

    def test_default_extensions_skip_assets(self, settings) -> None:
        for path in ("/main.js", "/style.css", "/logo.svg", "/photo.jpg"):
            assert classify(_get(path), settings).reason is RejectionReason.REJECTED_EXTENSION

    def test_default_extensions_allow_documents(self, settings) -> None:
        for path in ("/", "/about", "/index.html", "/legacy/page.php"):
            assert classify(_get(path), settings).accepted, path

    def test_rejected_path_with_allow_list(self, tmp_path) -> None:
        settings = make_settings(tmp_path, prerenderable_path_regexps=[re.compile(r"nonexistingpath")])
        assert classify(_get("/"), settings).reason is RejectionReason.REJECTED_PATH

    def test_allowed_path(self, tmp_path) -> None:
        settings = make_settings(tmp_path, prerenderable_path_regexps=[re.compile(r"index\.html")])
        result = classify(_get("/index.html"), settings)
        assert result.accepted
        assert result.reason is None

    def test_blocked_path(self, tmp_path) -> None:
        settings = make_settings(tmp_path, blocked_path_regexps=[r"^/admin"])
        assert classify(_get("/admin/users"), settings).reason is RejectionReason.REJECTED_PATH
        assert classify(_get("/about"), settings).accepted

    def test_block_list_wins_over_allow_list(self, tmp_path) -> None:
        settings = make_settings(
            tmp_path,
            prerenderable_path_regexps=[r"^/blog"],
            blocked_path_regexps=[r"/drafts/"],
        )
        assert classify(_get("/blog/post"), settings).accepted
        assert classify(_get("/blog/drafts/x"), settings).reason is RejectionReason.REJECTED_PATH


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

class TestOrdering:
    def test_method_checked_before_user_agent(self, settings) -> None:
        result = classify(_get(ua="", method="POST"), settings)
        assert result.reason is RejectionReason.REJECTED_METHOD

    def test_post_with_bot_and_allowed_path_is_rejected_method(self, settings) -> None:
        assert classify(_get("/about", method="POST"), settings).reason is RejectionReason.REJECTED_METHOD

    def test_user_agent_checked_before_extension(self, settings) -> None:
        result = classify(_get("/pixel.png", ua=BROWSER_UA), settings)
        assert result.reason is RejectionReason.REJECTED_USER_AGENT

    def test_extension_checked_before_path(self, tmp_path) -> None:
        settings = make_settings(tmp_path, prerenderable_path_regexps=[r"nothing"])
        assert classify(_get("/a.png"), settings).reason is RejectionReason.REJECTED_EXTENSION

    def test_each_call_returns_a_fresh_result(self, settings) -> None:
        rejected = classify(_get(ua=""), settings)
        accepted = classify(_get(), settings)
        assert rejected.reason is RejectionReason.NO_USER_AGENT
        assert accepted.reason is None


# ---------------------------------------------------------------------------
# Bot detection and proxy context
# ---------------------------------------------------------------------------

class TestBotDetection:
    @pytest.mark.parametrize(
        "ua",
        [
            GOOGLEBOT_UA,
            "Mozilla/5.0 (compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)",
            "facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)",
            "Twitterbot/1.0",
            "Slackbot-LinkExpanding 1.0 (+https://api.slack.com/robots)",
            "GOOGLEBOT",
        ],
    )
    def test_known_bots(self, settings, ua: str) -> None:
        assert is_bot_user_agent(ua, settings)

    def test_custom_patterns_are_case_insensitive(self, tmp_path) -> None:
        settings = make_settings(tmp_path, bot_user_agent_patterns=["MyCrawler"])
        assert is_bot_user_agent("mycrawler/1.0", settings)
        assert not is_bot_user_agent(GOOGLEBOT_UA, settings)

    def test_prerender_context_skips_user_agent_checks(self, settings) -> None:
        result = classify(_get(ua=""), settings, ProxyContext.PRERENDER)
        assert result.accepted

    def test_prerender_context_still_checks_extension(self, settings) -> None:
        result = classify(_get("/x.png", ua=""), settings, ProxyContext.PRERENDER)
        assert result.reason is RejectionReason.REJECTED_EXTENSION

    def test_prerender_context_still_checks_method(self, settings) -> None:
        result = classify(_get(method="POST"), settings, ProxyContext.PRERENDER)
        assert result.reason is RejectionReason.REJECTED_METHOD

    def test_static_context_means_not_a_bot(self, settings) -> None:
        result = classify(_get(), settings, ProxyContext.STATIC)
        assert result.reason is RejectionReason.REJECTED_USER_AGENT
