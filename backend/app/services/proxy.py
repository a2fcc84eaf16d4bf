import logging
from dataclasses import dataclass, field
from typing import Iterable
from urllib.parse import urlparse

import httpx

from app.config import PROXY_ALLOWED_HOSTS, PROXY_TIMEOUT
from app.errors import OriginNotAllowed, UpstreamFetchFailure
from app.validation import origin_of

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}

# Host is set by httpx from the target URL; length is recomputed for the body we send
_DROP_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}

# A URL that passed validation can still fail in httpx (bad subpath, IDNA labels)
_UPSTREAM_ERRORS = (httpx.HTTPError, httpx.InvalidURL, UnicodeError)

# httpx hands back a decoded body, so encoding/length no longer describe it.
# Upstream framing protection would defeat embedding the proxied page.
_DROP_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {
    "content-encoding",
    "content-length",
    "x-frame-options",
}


@dataclass
class ProxiedResponse:
    status_code: int
    content: bytes
    headers: list[tuple[str, str]] = field(default_factory=list)


def _make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=PROXY_TIMEOUT, follow_redirects=False)


def is_host_allowed(url: str, allowed_hosts: Iterable[str]) -> bool:
    """True when ``allowed_hosts`` is empty or the URL's host (or a parent domain) is listed."""
    allowed = [h.lower() for h in allowed_hosts]
    if not allowed:
        return True
    host = (urlparse(url).hostname or "").lower()
    return any(host == h or host.endswith("." + h) for h in allowed)


def build_target_url(url: str, subpath: str = "", extra_params=None) -> str:
    """Target for a proxied request: ``url`` plus any sub-path and pass-through query params."""
    target = httpx.URL(url)
    if subpath:
        path = target.path.rstrip("/") + "/" + subpath.lstrip("/")
        target = target.copy_with(path=path)
    if extra_params:
        target = target.copy_merge_params(extra_params)
    return str(target)


def build_forward_headers(headers: Iterable[tuple[str, str]], target_url: str) -> list[tuple[str, str]]:
    """Client headers minus hop-by-hop ones, with Origin rewritten to the target's origin."""
    forwarded = []
    for name, value in headers:
        lname = name.lower()
        if lname in _DROP_REQUEST_HEADERS:
            continue
        if lname == "origin":
            value = origin_of(target_url)
        forwarded.append((name, value))
    return forwarded


async def forward_request(
    method: str,
    url: str,
    headers: Iterable[tuple[str, str]] = (),
    body: bytes = b"",
    subpath: str = "",
    extra_params=None,
    allowed_hosts: Iterable[str] = PROXY_ALLOWED_HOSTS,
) -> ProxiedResponse:
    """Send the client's request on to ``url`` and return the upstream response."""
    if not is_host_allowed(url, allowed_hosts):
        raise OriginNotAllowed(f"Proxying to {urlparse(url).hostname} is not allowed")

    target = url
    try:
        target = build_target_url(url, subpath, extra_params)
        forward_headers = build_forward_headers(headers, target)
        async with _make_client() as client:
            resp = await client.request(
                method,
                target,
                headers=forward_headers,
                content=body or None,
            )
    except _UPSTREAM_ERRORS as e:
        logger.warning(f"[proxy] {method} {target} failed: {e}")
        raise UpstreamFetchFailure(f"Error proxying to {target}: {e}") from e

    if resp.status_code >= 400:
        logger.info(f"[proxy] {method} {target} returned {resp.status_code}")

    response_headers = [
        (name, value)
        for name, value in resp.headers.multi_items()
        if name.lower() not in _DROP_RESPONSE_HEADERS
    ]
    return ProxiedResponse(
        status_code=resp.status_code,
        content=resp.content,
        headers=response_headers,
    )
