"""Helpers for safe debug logging.

RPC endpoints frequently embed credentials (``?api-key=...`` query
parameters, token path segments, basic-auth userinfo) and account payloads
can be large base64 blobs. These helpers keep both out of DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SENSITIVE_QUERY_KEYS: frozenset[str] = frozenset(
    {
        "api-key",
        "api_key",
        "apikey",
        "key",
        "token",
        "access_token",
        "auth",
    }
)

# Path segments at least this long that look like opaque tokens are hidden.
_TOKEN_SEGMENT_MIN = 20


def _looks_like_token(segment: str) -> bool:
    return len(segment) >= _TOKEN_SEGMENT_MIN and segment.replace("-", "").replace("_", "").isalnum()


def redact_url(url: str) -> str:
    """Return *url* with credentials replaced by ``<redacted>``."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<unparseable-url>"

    netloc = parts.netloc
    if "@" in netloc:
        netloc = f"<redacted>@{netloc.rsplit('@', 1)[1]}"

    path = "/".join("<redacted>" if _looks_like_token(seg) else seg for seg in parts.path.split("/"))

    query = parts.query
    if query:
        pairs = [
            (k, "<redacted>" if k.lower() in _SENSITIVE_QUERY_KEYS else v)
            for k, v in parse_qsl(query, keep_blank_values=True)
        ]
        query = urlencode(pairs, safe="<>")

    return urlunsplit((parts.scheme, netloc, path, query, parts.fragment))


def redact_for_log(value: Any, *, max_string: int = 64, max_items: int = 8, _depth: int = 0) -> Any:
    """Return a shortened copy of *value* suitable for debug logs.

    Long strings (account payloads) are truncated and long lists (address
    lists, value lists) are cut to their first *max_items* entries.
    """
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<{len(value)} chars>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        return {
            str(k): redact_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for k, v in value.items()
        }

    if isinstance(value, Sequence):
        items = [
            redact_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for v in value[:max_items]
        ]
        if len(value) > max_items:
            items.append(f"…<{len(value) - max_items} more>")
        return items

    return repr(value)
