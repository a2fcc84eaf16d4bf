from fastapi import HTTPException, Request

from app.services.browser_pool import BrowserPool


def get_browser_pool(request: Request) -> BrowserPool:
    """The browser pool created by the app's lifespan handler."""
    pool = getattr(request.app.state, "browser_pool", None)
    if pool is None:
        raise HTTPException(status_code=503, detail="Service not ready - please retry")
    return pool
