"""
Heuristic classification rules for raw gateway log text.

These rules are a best-effort classifier over unstructured text. Every
rule has an explicit ``unknown`` escape hatch: a call to a host that is not
in the provider table, or a path that matches no group keyword, is
``unknown`` rather than being forced into a named bucket. The dashboard
reports the unknown share so the classifier's blind spot stays visible.

Rules (all case-insensitive):
    provider        exact or dot-suffix host match, else ``unknown``
    endpoint group  ordered path keywords, else ``unknown``
    status code     ``status code NNN``, else first bare 3-digit number in
                    [100, 599] outside the URL, else ``None``
    failure         no status, status >= 400, or an error/fatal line
    rate limited    429 or rate-limit vocabulary
    critical        narrow fixed set of hard-failure signatures only
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from clawview.facts.models import UNKNOWN

PROVIDER_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("lark", ("open.larksuite.com", "open.feishu.cn", "open.feishu-boe.cn")),
    ("discord", ("discord.com", "discordapp.com", "cdn.discordapp.com")),
    ("github", ("api.github.com", "github.com")),
    ("slack", ("slack.com", "slack-edge.com")),
    ("telegram", ("api.telegram.org",)),
    ("whatsapp", ("graph.facebook.com", "api.whatsapp.com")),
    ("openai", ("api.openai.com",)),
    ("anthropic", ("api.anthropic.com",)),
    ("google", ("generativelanguage.googleapis.com", "api.google.com")),
)

ENDPOINT_GROUPS = (
    "auth",
    "account",
    "message_send",
    "message_receive",
    "media",
    "webhooks",
    "scheduler",
    "admin_config",
    "health_metrics",
    UNKNOWN,
)

_URL = re.compile(r"https?://[^\s\"')<>\]]+", re.IGNORECASE)
_STATUS_EXPLICIT = re.compile(r"status\s*(?:code)?\s*[:=]?\s*(\d{3})\b", re.IGNORECASE)
_BARE_3_DIGITS = re.compile(r"(?<![\w.:/-])(\d{3})(?![\w.:/-])")
_RATE_LIMIT = re.compile(r"\b429\b|rate[\s_-]*limit|throttl|too\s*many\s*requests", re.IGNORECASE)
_METHOD = re.compile(r"\b(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)\b")
_LATENCY = re.compile(r"\b(\d{1,7}(?:\.\d+)?)\s*ms\b", re.IGNORECASE)
_REQUEST_ID = re.compile(r"\b(?:x-)?request[_-]?id\s*[:=]\s*\"?([^\s\",;]+)", re.IGNORECASE)

_ID_SEGMENT = re.compile(
    r"^(?:\d+|[0-9a-f]{8,}|[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
    r"|(?=[a-z0-9_-]*\d)[a-z0-9_-]{16,})$",
    re.IGNORECASE,
)
_BOT_TOKEN_SEGMENT = re.compile(r"^bot\d+:[\w-]+$", re.IGNORECASE)

# (signature, pattern); order matters, first match wins
CRITICAL_SIGNATURES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("startup_failure", re.compile(r"gateway failed to start|failed to start gateway|startup failed", re.IGNORECASE)),
    ("port_in_use", re.compile(r"EADDRINUSE|address already in use|port \d+ (?:is )?already in use", re.IGNORECASE)),
    ("out_of_memory", re.compile(r"\bout of memory\b|\bOOM\b|heap out of memory|ENOMEM", re.IGNORECASE)),
    ("panic", re.compile(r"\bpanic(?:ked)?:", re.IGNORECASE)),
    ("unhandled_crash", re.compile(r"uncaught exception|unhandled (?:promise )?rejection|unhandledrejection|fatal error:.*crash|process crashed", re.IGNORECASE)),
    ("shutdown_timeout", re.compile(r"shutdown timed? ?out|graceful shutdown timeout", re.IGNORECASE)),
    ("unexpected_restart", re.compile(r"unexpected restart|restarted unexpectedly", re.IGNORECASE)),
)

# Signatures counted as unexpected restarts of the gateway process.
RESTART_SIGNATURES = frozenset({"startup_failure", "unexpected_restart"})


@dataclass(frozen=True, slots=True)
class ParsedUrl:
    url: str
    host: str
    path: str


def extract_first_url(text: str) -> ParsedUrl | None:
    """Return the first well-formed http(s) URL in ``text``."""
    match = _URL.search(text or "")
    if not match:
        return None
    raw = match.group(0).rstrip(".,;:")
    try:
        parts = urlsplit(raw)
        host = (parts.hostname or "").lower()
    except ValueError:
        return None
    if not host or "." not in host and host != "localhost":
        return None
    return ParsedUrl(url=raw, host=host, path=parts.path or "/")


def detect_provider(host: str) -> str:
    host = (host or "").lower()
    for provider, hosts in PROVIDER_RULES:
        if any(host == h or host.endswith(f".{h}") for h in hosts):
            return provider
    return UNKNOWN


def classify_endpoint_group(path: str) -> str:
    p = (path or "").lower()
    if p.startswith("/auth") or "/login" in p or "/token" in p or "/oauth" in p:
        return "auth"
    if p.startswith("/users") or "/profile" in p or "/account" in p:
        return "account"
    if (
        "/messages/send" in p
        or "/messages.create" in p
        or "/chat.postmessage" in p
        or "/sendmessage" in p
        or p.rstrip("/").endswith("/send")
    ):
        return "message_send"
    if "/messages" in p or "/getupdates" in p:
        return "message_receive"
    if "/media" in p or "/files" in p or "/upload" in p or "/images" in p:
        return "media"
    if "/webhook" in p:
        return "webhooks"
    if "/jobs" in p or "/scheduler" in p or "/cron" in p:
        return "scheduler"
    if "/admin" in p or "/config" in p:
        return "admin_config"
    if "/health" in p or "/ready" in p or "/metrics" in p:
        return "health_metrics"
    return UNKNOWN


def path_template(path: str) -> str:
    """Lowercased path with identifier-like segments replaced by ``:id``.

    ``/bot123:ABC/sendMessage`` becomes ``/bot:id/sendmessage``. Query
    strings never reach this function.
    """
    segments = []
    for segment in (path or "/").split("/"):
        if not segment:
            segments.append(segment)
        elif _BOT_TOKEN_SEGMENT.match(segment):
            segments.append("bot:id")
        elif _ID_SEGMENT.match(segment):
            segments.append(":id")
        else:
            segments.append(segment.lower())
    template = "/".join(segments)
    return template if template.startswith("/") else f"/{template}"


def parse_status_code(text: str, url: str | None = None) -> int | None:
    """Status from ``status code NNN`` or a bare 3-digit number in [100, 599]."""
    s = text or ""
    explicit = _STATUS_EXPLICIT.search(s)
    if explicit:
        code = int(explicit.group(1))
        if 100 <= code <= 599:
            return code
    if url:
        s = s.replace(url, " ")
    for match in _BARE_3_DIGITS.finditer(s):
        code = int(match.group(1))
        if 100 <= code <= 599:
            return code
    return None


def is_rate_limited(text: str, status_code: int | None) -> bool:
    return status_code == 429 or bool(_RATE_LIMIT.search(text or ""))


def is_failure(status_code: int | None, level: str) -> bool:
    """Unknown status is a failure by policy, never a success."""
    if status_code is None:
        return True
    return status_code >= 400 or level in ("error", "fatal")


def parse_method(text: str) -> str | None:
    match = _METHOD.search(text or "")
    return match.group(1).upper() if match else None


def parse_latency_ms(text: str) -> int | None:
    match = _LATENCY.search(text or "")
    return int(round(float(match.group(1)))) if match else None


def parse_request_id(text: str) -> str | None:
    match = _REQUEST_ID.search(text or "")
    return match.group(1) if match else None


def match_critical_signature(text: str) -> str | None:
    """Name of the hard-failure signature in ``text``, or ``None``.

    Generic warnings and business-logic errors never match.
    """
    for signature, pattern in CRITICAL_SIGNATURES:
        if pattern.search(text or ""):
            return signature
    return None


__all__ = [
    "PROVIDER_RULES",
    "ENDPOINT_GROUPS",
    "CRITICAL_SIGNATURES",
    "RESTART_SIGNATURES",
    "ParsedUrl",
    "extract_first_url",
    "detect_provider",
    "classify_endpoint_group",
    "path_template",
    "parse_status_code",
    "is_rate_limited",
    "is_failure",
    "parse_method",
    "parse_latency_ms",
    "parse_request_id",
    "match_critical_signature",
]
