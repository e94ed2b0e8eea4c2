# secscan/scanner/http_client.py
"""
Shared async HTTP client factory for the HTTP-based probes.

Every probe opens its own client; probes share no connections, so a slow
or cancelled probe never affects another one. TLS verification is always
off here: certificate posture is the TLS Inspector's job, the HTTP probes
only care about what the server answers.

Requires: httpx
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx

USER_AGENT = "Mozilla/5.0 (compatible; secscan Security Scanner)"

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/json,*/*",
}

# Max response body kept for pattern scanning (256KB)
MAX_BODY_CHARS = 262144


def build_client(
    config: Dict[str, Any],
    *,
    timeout: float,
    follow_redirects: bool = True,
    max_redirects: int = 3,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient for a single probe.

    config["transport"] may carry an httpx transport (tests use
    httpx.MockTransport); otherwise the default network transport is used.
    """
    transport: Optional[httpx.AsyncBaseTransport] = config.get("transport")
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.get("timeout", timeout)),
        follow_redirects=follow_redirects,
        max_redirects=max_redirects,
        verify=False,
        headers=DEFAULT_HEADERS,
        transport=transport,
    )


def with_query_param(url: str, name: str, value: str) -> str:
    """
    Append `name=value` to the URL's query string, URL-encoding the value.
    Existing query parameters are kept as-is.
    """
    parts = urlsplit(url)
    extra = urlencode({name: value})
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", query, parts.fragment))


def response_text(resp: httpx.Response) -> str:
    """Decoded body, truncated to MAX_BODY_CHARS."""
    try:
        text = resp.text
    except (UnicodeDecodeError, LookupError):
        text = resp.content.decode("utf-8", errors="replace")
    return text[:MAX_BODY_CHARS]


def lower_headers(resp: httpx.Response) -> Dict[str, str]:
    """Response headers as a plain dict with lower-cased keys."""
    return {k.lower(): v for k, v in resp.headers.items()}
