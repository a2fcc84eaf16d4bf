import io
import logging
import time
from dataclasses import dataclass

from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright_stealth import Stealth

from app.config import SCREENSHOT_STEALTH
from app.errors import CaptureError, NavigationTimeout
from app.services.browser_pool import BrowserPool

logger = logging.getLogger(__name__)

# Cap on captured height; keeps image size bounded for very tall pages
MAX_SCROLL_OFFSET = 2200
VIEWPORT_WIDTH = 1280
VIEWPORT_HEIGHT = 720
NAVIGATION_TIMEOUT_MS = 30000

PAGE_HEIGHT_JS = "() => document.documentElement.scrollHeight"


@dataclass
class CaptureResult:
    data: bytes
    width: int
    height: int
    content_type: str = "image/png"


def clip_height(page_height) -> int:
    """Effective capture height: the page height, capped at MAX_SCROLL_OFFSET."""
    try:
        height = int(page_height)
    except (TypeError, ValueError):
        height = 0
    return max(1, min(height, MAX_SCROLL_OFFSET))


def _image_size(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as img:
        return img.size


async def capture_screenshot(
    url: str,
    pool: BrowserPool,
    stealth: bool = SCREENSHOT_STEALTH,
) -> CaptureResult:
    """Load ``url`` in a pooled browser and return a PNG of its top section.

    The clip is VIEWPORT_WIDTH wide and as tall as the document, up to
    MAX_SCROLL_OFFSET pixels.
    """
    t0 = time.time()
    async with pool.session() as browser:
        try:
            page = await browser.new_page(
                viewport={"width": VIEWPORT_WIDTH, "height": VIEWPORT_HEIGHT},
            )
        except PlaywrightError as e:
            raise CaptureError(f"Failed to open page: {e}") from e

        try:
            if stealth:
                await Stealth().apply_stealth_async(page)

            await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)

            full_page_height = await page.evaluate(PAGE_HEIGHT_JS)
            height = clip_height(full_page_height)

            screenshot = await page.screenshot(
                full_page=True,
                type="png",
                clip={"x": 0, "y": 0, "width": VIEWPORT_WIDTH, "height": height},
            )
        except PlaywrightTimeoutError as e:
            logger.warning(f"[screenshot] Navigation to {url} timed out after {NAVIGATION_TIMEOUT_MS}ms")
            raise NavigationTimeout(f"Timed out loading {url}: {e}") from e
        except PlaywrightError as e:
            logger.warning(f"[screenshot] Capture of {url} failed: {e}")
            raise CaptureError(str(e)) from e
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"[screenshot] Page close failed: {e}")

    width, img_height = _image_size(screenshot)
    logger.info(
        f"[screenshot] Captured {url}: {width}x{img_height} "
        f"(document {full_page_height}px, {len(screenshot)} bytes, {time.time() - t0:.1f}s)"
    )
    return CaptureResult(data=screenshot, width=width, height=img_height)
