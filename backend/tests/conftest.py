"""
Shared fixtures and fakes for the URL preview backend tests.

The fakes stand in for Playwright's Browser and Page so the pool, the capture
routine and the HTTP layer can be exercised without a Chromium install.
"""

import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Ensure backend/ is on sys.path so `app` imports without installing
BACKEND = Path(__file__).resolve().parents[1]
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

from fastapi.testclient import TestClient  # noqa: E402

from app.dependencies import get_browser_pool  # noqa: E402
from app.main import app  # noqa: E402
from app.services.browser_pool import BrowserPool  # noqa: E402


def make_png(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (255, 255, 255)).save(buf, format="PNG")
    return buf.getvalue()


class FakePage:
    def __init__(self, document_height=1000, goto_error=None):
        self.document_height = document_height
        self.goto_error = goto_error
        self.goto_calls = []
        self.screenshot_calls = []
        self.closed = False

    async def goto(self, url, **kwargs):
        self.goto_calls.append((url, kwargs))
        if self.goto_error is not None:
            raise self.goto_error

    async def evaluate(self, expression):
        return self.document_height

    async def screenshot(self, **kwargs):
        self.screenshot_calls.append(kwargs)
        clip = kwargs["clip"]
        return make_png(clip["width"], clip["height"])

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page_factory=None):
        self.page_factory = page_factory or FakePage
        self.pages = []
        self.new_page_kwargs = []
        self.connected = True
        self.closed = False

    def is_connected(self):
        return self.connected

    async def new_page(self, **kwargs):
        self.new_page_kwargs.append(kwargs)
        page = self.page_factory()
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True
        self.connected = False


class FakeLauncher:
    """Async callable that hands out FakeBrowsers and remembers them."""

    def __init__(self, page_factory=None, error=None):
        self.page_factory = page_factory
        self.error = error
        self.launched = []

    async def __call__(self):
        if self.error is not None:
            raise self.error
        browser = FakeBrowser(self.page_factory)
        self.launched.append(browser)
        return browser


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def client():
    """TestClient without lifespan, so no real browser pool is started."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_pool():
    """Install a BrowserPool backed by fake browsers for the screenshot endpoint."""

    def _install(page_factory=None, **pool_kwargs):
        launcher = FakeLauncher(page_factory=page_factory)
        pool = BrowserPool(launcher=launcher, **pool_kwargs)
        app.dependency_overrides[get_browser_pool] = lambda: pool
        return pool, launcher

    yield _install
    app.dependency_overrides.clear()
