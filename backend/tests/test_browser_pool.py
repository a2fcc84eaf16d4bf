"""Tests for the bounded browser session pool."""

import asyncio

import pytest

from app.errors import LaunchFailure, PoolTimeout
from app.services.browser_pool import BrowserPool
from conftest import FakeLauncher


def test_released_browser_is_reused(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=2)
        first = await pool.acquire()
        await pool.release(first)
        second = await pool.acquire()
        await pool.release(second)
        return first, second

    first, second = asyncio.run(scenario())
    assert first is second
    assert len(launcher.launched) == 1


def test_session_context_manager_checks_browser_back_in(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=1)
        async with pool.session() as browser:
            during = pool.stats()
        return browser, during, pool.stats()

    browser, during, after = asyncio.run(scenario())
    assert during == {"size": 1, "idle": 0, "in_use": 1, "max_size": 1}
    assert after == {"size": 1, "idle": 1, "in_use": 0, "max_size": 1}
    assert browser.closed is False


def test_session_releases_browser_when_body_raises(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=1)
        with pytest.raises(RuntimeError):
            async with pool.session():
                raise RuntimeError("boom")
        return pool.stats()

    stats = asyncio.run(scenario())
    assert stats["in_use"] == 0
    assert stats["idle"] == 1


def test_acquire_times_out_when_pool_is_exhausted(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=1, acquire_timeout=0.05)
        await pool.acquire()
        await pool.acquire()

    with pytest.raises(PoolTimeout):
        asyncio.run(scenario())
    assert len(launcher.launched) == 1


def test_never_more_live_browsers_than_max_size(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=2, acquire_timeout=5)
        peak = 0

        async def worker():
            nonlocal peak
            async with pool.session():
                peak = max(peak, pool.size)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(worker() for _ in range(6)))
        return peak, pool.stats()

    peak, stats = asyncio.run(scenario())
    assert peak <= 2
    assert len(launcher.launched) <= 2
    assert stats["in_use"] == 0


def test_waiter_gets_browser_once_one_is_released(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=1, acquire_timeout=5)
        held = await pool.acquire()

        async def release_later():
            await asyncio.sleep(0.02)
            await pool.release(held)

        waiter, _ = await asyncio.gather(pool.acquire(), release_later())
        return held, waiter

    held, waiter = asyncio.run(scenario())
    assert waiter is held


def test_disconnected_browser_is_closed_on_release(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=1)
        browser = await pool.acquire()
        browser.connected = False
        await pool.release(browser)
        replacement = await pool.acquire()
        return browser, replacement, pool.stats()

    browser, replacement, stats = asyncio.run(scenario())
    assert browser.closed is True
    assert replacement is not browser
    assert stats["size"] == 1


def test_disconnected_idle_browser_is_skipped_on_acquire(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=1)
        browser = await pool.acquire()
        await pool.release(browser)
        # Crashed while idle
        browser.connected = False
        return browser, await pool.acquire()

    dead, fresh = asyncio.run(scenario())
    assert fresh is not dead
    assert len(launcher.launched) == 2


def test_reap_idle_closes_browsers_past_idle_timeout(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=2, idle_timeout=0)
        a = await pool.acquire()
        b = await pool.acquire()
        await pool.release(a)
        reaped = await pool.reap_idle()
        return reaped, a, b, pool.stats()

    reaped, a, b, stats = asyncio.run(scenario())
    assert reaped == 1
    assert a.closed is True
    assert b.closed is False
    assert stats == {"size": 1, "idle": 0, "in_use": 1, "max_size": 2}


def test_reap_idle_keeps_recently_used_browsers(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=1, idle_timeout=300)
        async with pool.session():
            pass
        return await pool.reap_idle(), pool.stats()

    reaped, stats = asyncio.run(scenario())
    assert reaped == 0
    assert stats["idle"] == 1


def test_reaper_task_runs_in_background(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=1, idle_timeout=0, reap_interval=0.01)
        await pool.start()
        async with pool.session() as browser:
            pass
        await asyncio.sleep(0.05)
        stats = pool.stats()
        await pool.stop()
        return browser, stats

    browser, stats = asyncio.run(scenario())
    assert browser.closed is True
    assert stats["size"] == 0


def test_stop_closes_idle_and_later_released_browsers(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher, max_size=2)
        await pool.start()
        idle = await pool.acquire()
        busy = await pool.acquire()
        await pool.release(idle)
        await pool.stop()
        idle_closed_at_stop = idle.closed
        busy_closed_at_stop = busy.closed
        await pool.release(busy)
        return idle_closed_at_stop, busy_closed_at_stop, busy.closed, pool.stats()

    idle_closed, busy_closed_at_stop, busy_closed, stats = asyncio.run(scenario())
    assert idle_closed is True
    assert busy_closed_at_stop is False
    assert busy_closed is True
    assert stats["size"] == 0


def test_acquire_after_stop_fails(launcher):
    async def scenario():
        pool = BrowserPool(launcher=launcher)
        await pool.start()
        await pool.stop()
        await pool.acquire()

    with pytest.raises(LaunchFailure):
        asyncio.run(scenario())


def test_cancelled_launch_returns_the_slot():
    async def scenario():
        launching = asyncio.Event()
        calls = 0
        fast = FakeLauncher()

        async def launcher():
            nonlocal calls
            calls += 1
            if calls == 1:
                launching.set()
                await asyncio.sleep(10)
            return await fast()

        pool = BrowserPool(launcher=launcher, max_size=1, acquire_timeout=0.05)
        pending = asyncio.create_task(pool.acquire())
        await launching.wait()
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        # The slot came back, so this launches instead of timing out
        browser = await pool.acquire()
        return browser, fast.launched, pool.stats()

    browser, launched, stats = asyncio.run(scenario())
    assert launched == [browser]
    assert stats == {"size": 1, "idle": 0, "in_use": 1, "max_size": 1}


def test_launch_failure_returns_the_slot():
    failing = FakeLauncher(error=RuntimeError("chromium binary missing"))

    async def scenario():
        pool = BrowserPool(launcher=failing, max_size=1, acquire_timeout=0.05)
        with pytest.raises(LaunchFailure, match="chromium binary missing"):
            await pool.acquire()
        # Slot must be free again, so this fails on launch rather than timing out
        with pytest.raises(LaunchFailure):
            await pool.acquire()
        return pool.stats()

    stats = asyncio.run(scenario())
    assert stats["size"] == 0


def test_max_size_must_be_positive():
    with pytest.raises(ValueError):
        BrowserPool(launcher=FakeLauncher(), max_size=0)
