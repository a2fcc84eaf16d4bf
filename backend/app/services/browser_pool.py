import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from playwright.async_api import Browser, async_playwright

from app.config import (
    SCREENSHOT_ACQUIRE_TIMEOUT,
    SCREENSHOT_IDLE_TIMEOUT,
    SCREENSHOT_POOL_SIZE,
    SCREENSHOT_REAP_INTERVAL,
)
from app.errors import LaunchFailure, PoolTimeout

logger = logging.getLogger(__name__)

# Containers usually lack the kernel features Chromium's sandbox needs
CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

Launcher = Callable[[], Awaitable[Browser]]


class BrowserPool:
    """Bounded pool of headless Chromium processes.

    At most ``max_size`` browsers are alive at once, counting both idle and
    checked-out ones. Released browsers are kept for reuse until they sit idle
    longer than ``idle_timeout`` seconds, at which point the reaper closes them.
    """

    def __init__(
        self,
        launcher: Optional[Launcher] = None,
        max_size: int = SCREENSHOT_POOL_SIZE,
        idle_timeout: float = SCREENSHOT_IDLE_TIMEOUT,
        acquire_timeout: float = SCREENSHOT_ACQUIRE_TIMEOUT,
        reap_interval: float = SCREENSHOT_REAP_INTERVAL,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.idle_timeout = idle_timeout
        self.acquire_timeout = acquire_timeout
        self.reap_interval = reap_interval

        self._launcher = launcher
        self._playwright = None
        self._slots = asyncio.Semaphore(max_size)
        # (browser, released_at) pairs, most recently released last
        self._idle: list[tuple[Browser, float]] = []
        self._in_use: set = set()
        self._reaper: Optional[asyncio.Task] = None
        self._closed = False

    async def start(self) -> None:
        """Start the Playwright driver (unless a launcher was injected) and the reaper."""
        if self._launcher is None and self._playwright is None:
            self._playwright = await async_playwright().start()
        self._closed = False
        if self._reaper is None:
            self._reaper = asyncio.create_task(self._reap_loop())
        logger.info(
            f"[pool] Started (max_size={self.max_size}, idle_timeout={self.idle_timeout:.0f}s)"
        )

    async def stop(self) -> None:
        """Close every idle browser and stop the driver.

        Browsers still checked out are closed when they are released.
        """
        self._closed = True
        if self._reaper is not None:
            self._reaper.cancel()
            try:
                await self._reaper
            except asyncio.CancelledError:
                pass
            self._reaper = None

        idle, self._idle = self._idle, []
        for browser, _ in idle:
            await self._close_browser(browser)

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.info(f"[pool] Stopped ({len(idle)} idle browsers closed, {len(self._in_use)} still in use)")

    async def _launch(self) -> Browser:
        if self._launcher is not None:
            return await self._launcher()
        if self._playwright is None:
            raise LaunchFailure("Browser pool is not started")
        return await self._playwright.chromium.launch(headless=True, args=CHROMIUM_ARGS)

    async def acquire(self) -> Browser:
        """Check a browser out, reusing an idle one when possible."""
        if self._closed:
            raise LaunchFailure("Browser pool is stopped")

        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError:
            raise PoolTimeout(
                f"No browser available after {self.acquire_timeout:.0f}s "
                f"({self.max_size} already in use)"
            )

        try:
            return await self._checkout()
        except BaseException:
            # Covers cancellation mid-launch too, or the slot would leak
            self._slots.release()
            raise

    async def _checkout(self) -> Browser:
        while self._idle:
            browser, _ = self._idle.pop()
            if browser.is_connected():
                self._in_use.add(browser)
                return browser
            logger.info("[pool] Discarding disconnected idle browser")
            await self._close_browser(browser)

        try:
            browser = await self._launch()
        except LaunchFailure:
            raise
        except Exception as e:
            logger.error(f"[pool] Browser launch failed: {e}")
            raise LaunchFailure(f"Failed to launch browser: {e}") from e

        self._in_use.add(browser)
        logger.info(f"[pool] Launched browser ({self.size}/{self.max_size} alive)")
        return browser

    async def release(self, browser: Browser) -> None:
        """Check a browser back in. Dead browsers, and any released after stop(), are closed."""
        if browser not in self._in_use:
            logger.warning("[pool] Ignoring release of a browser this pool did not hand out")
            return
        self._in_use.discard(browser)
        try:
            if self._closed or not browser.is_connected():
                await self._close_browser(browser)
            else:
                self._idle.append((browser, time.monotonic()))
        finally:
            self._slots.release()

    @asynccontextmanager
    async def session(self):
        browser = await self.acquire()
        try:
            yield browser
        finally:
            await self.release(browser)

    async def reap_idle(self) -> int:
        """Close browsers idle longer than idle_timeout. Returns how many were closed."""
        cutoff = time.monotonic() - self.idle_timeout
        stale = [entry for entry in self._idle if entry[1] <= cutoff]
        if not stale:
            return 0
        self._idle = [entry for entry in self._idle if entry[1] > cutoff]
        for browser, _ in stale:
            await self._close_browser(browser)
        logger.info(f"[pool] Reaped {len(stale)} idle browsers, {self.size} remaining")
        return len(stale)

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self.reap_interval)
            try:
                await self.reap_idle()
            except Exception as e:
                logger.warning(f"[pool] Idle reap failed: {e}")

    async def _close_browser(self, browser: Browser) -> None:
        try:
            await browser.close()
        except Exception as e:
            logger.debug(f"[pool] Browser close failed: {e}")

    @property
    def size(self) -> int:
        return len(self._idle) + len(self._in_use)

    def stats(self) -> dict:
        return {
            "size": self.size,
            "idle": len(self._idle),
            "in_use": len(self._in_use),
            "max_size": self.max_size,
        }
