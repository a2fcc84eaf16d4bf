import logging
import re
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup

from app.config import PREVIEW_FETCH_TIMEOUT
from app.errors import UpstreamFetchFailure
from app.validation import origin_of

logger = logging.getLogger(__name__)

_HEAD_OPEN_RE = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)


@dataclass
class PreviewResult:
    html: str
    status_code: int
    final_url: str


def _make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=PREVIEW_FETCH_TIMEOUT, follow_redirects=True)


def inject_base_tag(html: str, url: str) -> str:
    """Insert ``<base href="<origin>/">`` right after the first opening <head> tag.

    Relative asset references in the document then resolve against the
    original site when the HTML is served from this backend.
    """
    base_tag = f'<base href="{origin_of(url)}/">'

    match = _HEAD_OPEN_RE.search(html)
    if match:
        return html[:match.end()] + base_tag + html[match.end():]

    # No <head> in the markup; let the parser build one
    soup = BeautifulSoup(html, "html.parser")
    head = soup.new_tag("head")
    head.append(soup.new_tag("base", href=f"{origin_of(url)}/"))
    if soup.html is not None:
        soup.html.insert(0, head)
    else:
        soup.insert(0, head)
    return str(soup)


async def fetch_preview(url: str) -> PreviewResult:
    """Fetch ``url`` and return its HTML with a base tag pointing at its origin."""
    try:
        async with _make_client() as client:
            resp = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as e:
        logger.warning(f"[preview] Fetch of {url} failed: {e}")
        raise UpstreamFetchFailure(f"Failed to fetch {url}: {e}") from e

    if resp.status_code >= 400:
        logger.info(f"[preview] Upstream {url} returned {resp.status_code}")

    final_url = str(resp.url)
    html = inject_base_tag(resp.text, url)
    logger.info(f"[preview] Rewrote {url} ({len(html)} chars, served from {final_url})")
    return PreviewResult(html=html, status_code=resp.status_code, final_url=final_url)
