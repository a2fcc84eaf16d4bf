import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse, Response

from app.dependencies import get_browser_pool
from app.errors import CaptureError, InvalidURL, MissingParameter, UpstreamFetchFailure
from app.services.browser_pool import BrowserPool
from app.services.page_fetch import fetch_preview
from app.services.screenshot import capture_screenshot
from app.validation import require_absolute_url, require_http_prefix

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/_api/preview")
async def preview_page(url: Optional[str] = None, previewName: Optional[str] = None):
    """Return the page at ``url`` with a <base> tag so its relative assets load from the original site."""
    try:
        url = require_absolute_url(url)
    except MissingParameter:
        return JSONResponse({"message": "Missing url"}, status_code=400)
    except InvalidURL:
        return JSONResponse({"message": "Invalid url"}, status_code=400)

    if previewName:
        logger.info(f"[preview] Preview '{previewName}' requested for {url}")

    try:
        result = await fetch_preview(url)
    except UpstreamFetchFailure as e:
        return JSONResponse(
            {"error": "Failed to fetch preview", "message": str(e)},
            status_code=502,
        )

    return HTMLResponse(content=result.html)


@router.post("/_api/ss-preview")
async def screenshot_preview(
    url: Optional[str] = None,
    pool: BrowserPool = Depends(get_browser_pool),
):
    """Render ``url`` headlessly and return a PNG of the top of the page."""
    try:
        url = require_http_prefix(url)
    except (MissingParameter, InvalidURL):
        return JSONResponse({"error": "Invalid URL"}, status_code=400)

    try:
        result = await capture_screenshot(url, pool)
    except CaptureError as e:
        logger.error(f"[screenshot] Failed to generate preview for {url}: {e}")
        return JSONResponse(
            {"error": "Failed to generate preview", "message": str(e)},
            status_code=500,
        )
    except Exception as e:
        logger.exception(f"[screenshot] Unexpected error for {url}")
        return JSONResponse(
            {"error": "Failed to generate preview", "message": str(e)},
            status_code=500,
        )

    return Response(
        content=result.data,
        media_type=result.content_type,
        headers={
            "X-Image-Width": str(result.width),
            "X-Image-Height": str(result.height),
        },
    )
