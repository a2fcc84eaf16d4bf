from urllib.parse import urlparse

import httpx

from app.errors import InvalidURL, MissingParameter

_DEFAULT_PORTS = {"http": 80, "https": 443}


def require_url(value: str | None) -> str:
    """Return ``value`` stripped, or raise MissingParameter if it is empty."""
    url = (value or "").strip()
    if not url:
        raise MissingParameter("Missing url")
    return url


def require_http_prefix(value: str | None) -> str:
    """Screenshot endpoint check: present and starting with ``http``."""
    url = require_url(value)
    if not url.startswith("http"):
        raise InvalidURL(f"URL must start with http: {url}")
    return url


def require_absolute_url(value: str | None) -> str:
    """Present and parseable as an absolute http(s) URL with a host.

    The URL must also be one httpx will accept, since that is what fetches it.
    """
    url = require_url(value)
    try:
        parsed = urlparse(url)
        # Accessing .port validates the port component
        parsed.port
        # .host runs IDNA decoding of xn-- labels
        httpx.URL(url).host
    except (ValueError, httpx.InvalidURL) as e:
        raise InvalidURL(f"Invalid URL: {url}") from e
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidURL(f"Invalid URL: {url}")
    return url


def origin_of(url: str) -> str:
    """scheme://host[:port] for ``url``, default ports omitted."""
    parsed = urlparse(url)
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port and _DEFAULT_PORTS.get(parsed.scheme) != port:
        host = f"{host}:{port}"
    return f"{parsed.scheme}://{host}"
