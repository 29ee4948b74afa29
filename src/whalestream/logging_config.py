"""
Structured logging configuration for whalestream.

One JSON object per log line, with:
- Secret filtering: sink credentials (bot tokens, webhook URLs, chat ids) and auth
  material never reach the log, neither as extra fields nor inside messages
- Bounded fields: raw frames and request payloads are replaced by markers, http(s)
  URLs are reduced to their path (stream URLs keep their host), long lists are
  summarized
- Domain values (Decimal amounts, enum states, counters) rendered as plain JSON

Usage:
    from whalestream.logging_config import setup_logging, get_logger

    setup_logging()  # Call once at startup
    logger = get_logger(__name__)
    logger.info("Stream connected", extra={"purpose": "whale-monitor"})
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import IO, Any
from urllib.parse import urlsplit

import orjson

MAX_LIST_ITEMS = 10
MAX_DEPTH = 3

# Key fragments; any extra field whose name contains one is dropped
BLOCKED_FIELDS: frozenset[str] = frozenset(
    {
        "token",
        "secret",
        "password",
        "credential",
        "api_key",
        "auth",
        "bearer",
        "webhook_url",
        "chat_id",
        "ip_address",
    }
)

# Exact field names replaced by a marker
HIGH_CARDINALITY_FIELDS: dict[str, str] = {
    "frame": "[FRAME]",
    "payload": "[PAYLOAD]",
    "body": "[BODY]",
}

_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    # Telegram Bot API path segment: bot123456:AAH...
    (re.compile(r"\bbot\d+:[A-Za-z0-9_\-]+"), "[BOT_TOKEN]"),
    (re.compile(r"\b(?:bearer|token)[=:\s]+['\"]?[\w\-.]+['\"]?", re.I), "[TOKEN]"),
    (re.compile(r"\b(?:authorization|auth)[=:\s]+['\"]?[\w\-.]+['\"]?", re.I), "[AUTH]"),
    (re.compile(r"\bapi[_-]?key[=:]\s*['\"]?[\w\-]+['\"]?", re.I), "[API_KEY]"),
    (re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"), "[IP]"),
)

# Applied after _REDACTIONS so a token inside a URL path is already masked
_URL = re.compile(r"(?:https?|wss?)://[^\s\"'<>]+")

# Standard LogRecord attributes; anything else on a record came from extra={}
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


def _normalize_url(url: str) -> str:
    """Path component of a URL ("/" when there is none)."""
    return urlsplit(url).path or "/"


def _url_replacement(match: re.Match[str]) -> str:
    parts = urlsplit(match.group(0))
    # Stream endpoints keep their host; userinfo and query are dropped
    if parts.scheme in ("ws", "wss"):
        return f"{parts.scheme}://{parts.netloc.rpartition('@')[2]}{parts.path}"
    path = parts.path or "/"
    return "[URL]" if path == "/" else path


def _sanitize_text(text: str) -> str:
    """Mask credentials and IPs in free text; drop hosts from http(s) URLs and queries from all."""
    if not text:
        return text
    for pattern, marker in _REDACTIONS:
        text = pattern.sub(marker, text)
    return _URL.sub(_url_replacement, text)


def _is_blocked(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in BLOCKED_FIELDS)


def _render(value: Any, depth: int) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, str):
        return _sanitize_text(value)
    if isinstance(value, Mapping):
        return _filter_log_record(value, _depth=depth + 1)
    if isinstance(value, (list, tuple, set, frozenset)):
        if len(value) > MAX_LIST_ITEMS:
            return f"[list:{len(value)} items]"
        return [_render(item, depth + 1) for item in value]
    return _sanitize_text(str(value))


def _filter_log_record(record: Mapping[str, Any], *, _depth: int = 0) -> dict[str, Any]:
    """
    Filter extra fields for output.

    Blocked keys are dropped, "url" becomes "endpoint" (path only), raw-data keys
    become markers. Mappings nested deeper than MAX_DEPTH are truncated.
    """
    if _depth > MAX_DEPTH:
        return {"_truncated": "max depth exceeded"}

    out: dict[str, Any] = {}
    for key, value in record.items():
        key = str(key)
        if _is_blocked(key):
            continue
        lowered = key.lower()
        if lowered == "url" and isinstance(value, str):
            out["endpoint"] = _normalize_url(value)
        elif lowered in HIGH_CARDINALITY_FIELDS:
            out[key] = HIGH_CARDINALITY_FIELDS[lowered]
        else:
            out[key] = _render(value, _depth)
    return out


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}


class JsonFormatter(logging.Formatter):
    """
    JSON lines formatter.

    Output format:
    {"ts":"2024-01-28T00:00:00.000+00:00","level":"INFO","logger":"module","msg":"...", ...}

    WARNING and above also carry "file" and "line".
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": _sanitize_text(record.getMessage()),
        }
        if record.levelno >= logging.WARNING:
            entry["file"] = record.filename
            entry["line"] = record.lineno
        if record.exc_info:
            entry["exc"] = _sanitize_text(self.formatException(record.exc_info))

        entry.update(_filter_log_record(_extra_fields(record)))
        return orjson.dumps(entry, default=str).decode()


class SimpleFormatter(logging.Formatter):
    """Single-line console formatter: ``LEVEL    logger: msg | k=v ...``."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname:<8} {record.name}: {_sanitize_text(record.getMessage())}"
        fields = _filter_log_record(_extra_fields(record))
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + _sanitize_text(self.formatException(record.exc_info))
        return line


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """
    Install a single root handler. Call once at application startup.

    Args:
        level: Root log level.
        json_format: JSON lines (production) or console lines (development).
        stream: Output stream (default stderr).
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Library chatter (access logs, selector debug) stays out of the stream
    for noisy in ("aiohttp", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger, typically ``get_logger(__name__)``."""
    return logging.getLogger(name)
