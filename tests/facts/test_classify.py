"""Tests for ``clawview.facts.classify`` heuristics."""

from __future__ import annotations

import pytest

from clawview.facts import classify
from clawview.facts.models import UNKNOWN


class TestExtractFirstUrl:
    def test_finds_url_and_splits_host_path(self):
        parsed = classify.extract_first_url("POST https://Open.LarkSuite.com/open-apis/im/v1/messages?x=1 ok")
        assert parsed.host == "open.larksuite.com"
        assert parsed.path == "/open-apis/im/v1/messages"

    def test_trailing_punctuation_stripped(self):
        parsed = classify.extract_first_url("calling https://api.github.com/repos.")
        assert parsed.url == "https://api.github.com/repos"

    def test_no_url(self):
        assert classify.extract_first_url("gateway started on port 18789") is None

    def test_hostless_url_rejected(self):
        assert classify.extract_first_url("see http://intranet/x") is None


class TestDetectProvider:
    @pytest.mark.parametrize(
        "host,provider",
        [
            ("open.larksuite.com", "lark"),
            ("open.feishu.cn", "lark"),
            ("gateway.discord.com", "discord"),
            ("api.telegram.org", "telegram"),
            ("api.openai.com", "openai"),
        ],
    )
    def test_known_hosts(self, host, provider):
        assert classify.detect_provider(host) == provider

    def test_suffix_match_requires_dot_boundary(self):
        assert classify.detect_provider("notdiscord.com") == UNKNOWN

    def test_unknown_host(self):
        assert classify.detect_provider("example.org") == UNKNOWN


class TestEndpointGroup:
    @pytest.mark.parametrize(
        "path,group",
        [
            ("/oauth/token", "auth"),
            ("/v1/messages/send", "message_send"),
            ("/bot123:ABC/sendMessage", "message_send"),
            ("/api/chat.postMessage", "message_send"),
            ("/open-apis/im/v1/messages", "message_receive"),
            ("/bot123:ABC/getUpdates", "message_receive"),
            ("/api/v10/channels/1/upload", "media"),
            ("/hooks/webhook/abc", "webhooks"),
            ("/v1/jobs/42", "scheduler"),
            ("/admin/settings", "admin_config"),
            ("/healthz", "health_metrics"),
            ("/users/me", "account"),
        ],
    )
    def test_rules(self, path, group):
        assert classify.classify_endpoint_group(path) == group

    def test_unmatched_is_unknown_not_other(self):
        assert classify.classify_endpoint_group("/v1/completions") == UNKNOWN
        assert "others" not in classify.ENDPOINT_GROUPS


class TestPathTemplate:
    def test_numeric_and_hex_segments(self):
        assert classify.path_template("/v1/chats/123456/items/deadbeef01") == "/v1/chats/:id/items/:id"

    def test_uuid_segment(self):
        assert classify.path_template("/x/0f8fad5b-d9cb-469f-a165-70867728950e") == "/x/:id"

    def test_bot_token_segment(self):
        assert classify.path_template("/bot123:ABC-def/sendMessage") == "/bot:id/sendmessage"

    def test_plain_words_kept(self):
        assert classify.path_template("/v1/messages/send") == "/v1/messages/send"


class TestStatusCode:
    def test_explicit_status_code(self):
        assert classify.parse_status_code("request failed with status code 503") == 503

    def test_bare_number(self):
        assert classify.parse_status_code("lark api returned 429 too many requests") == 429

    def test_digits_inside_url_ignored(self):
        text = "GET https://api.github.com/repos/500/issues done"
        assert classify.parse_status_code(text, url="https://api.github.com/repos/500/issues") is None

    def test_out_of_range_ignored(self):
        assert classify.parse_status_code("took 999 units") is None

    def test_durations_are_not_status(self):
        assert classify.parse_status_code("completed in 250ms") is None


class TestFlags:
    def test_unknown_status_is_failure(self):
        assert classify.is_failure(None, "info") is True

    def test_error_level_is_failure_even_with_2xx(self):
        assert classify.is_failure(200, "error") is True

    def test_success(self):
        assert classify.is_failure(204, "info") is False

    @pytest.mark.parametrize("text", ["rate limit exceeded", "request throttled", "Too Many Requests"])
    def test_rate_limit_vocabulary(self, text):
        assert classify.is_rate_limited(text, None) is True

    def test_429_is_rate_limited(self):
        assert classify.is_rate_limited("", 429) is True

    def test_method_latency_request_id(self):
        text = "post https://x.io/a took 87.6 ms request_id=abc-123"
        assert classify.parse_method("POST https://x.io/a") == "POST"
        assert classify.parse_latency_ms(text) == 88
        assert classify.parse_request_id(text) == "abc-123"


class TestCriticalSignatures:
    @pytest.mark.parametrize(
        "text,signature",
        [
            ("panic: runtime error: index out of range", "panic"),
            ("Error: listen EADDRINUSE: address already in use :::18789", "port_in_use"),
            ("FATAL ERROR: Reached heap limit Allocation failed - JavaScript heap out of memory", "out_of_memory"),
            ("gateway failed to start: config invalid", "startup_failure"),
            ("Uncaught exception in worker", "unhandled_crash"),
            ("graceful shutdown timeout after 30s", "shutdown_timeout"),
            ("gateway restarted unexpectedly", "unexpected_restart"),
        ],
    )
    def test_hard_failures_match(self, text, signature):
        assert classify.match_critical_signature(text) == signature

    @pytest.mark.parametrize(
        "text",
        [
            "Error: user not found",
            "warning: deprecated config key 'foo'",
            "lark api returned 500",
            "failed to send message: timeout",
            "company panic room booked",
        ],
    )
    def test_generic_errors_do_not_match(self, text):
        assert classify.match_critical_signature(text) is None
