import logging
import socket
from contextlib import asynccontextmanager

from app import config

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    datefmt="%H:%M:%S",
)
# Quiet noisy HTTP logs unless debugging
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from app.routes.preview import router as preview_router
from app.routes.proxy import router as proxy_router
from app.services.browser_pool import BrowserPool

logger = logging.getLogger(__name__)

ALLOWED_HEADERS = ["Origin", "X-Requested-With", "Content-Type", "Accept"]

# Helmet-style defaults, minus frame protection so responses can be embedded
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "Referrer-Policy": "no-referrer",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    pool = BrowserPool()
    await pool.start()
    app.state.browser_pool = pool
    try:
        yield
    finally:
        app.state.browser_pool = None
        await pool.stop()


app = FastAPI(title="URL Preview API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=ALLOWED_HEADERS,
)


@app.middleware("http")
async def embedding_headers(request: Request, call_next):
    """Permissive CORS on every response, security headers, and no X-Frame-Options."""
    response = await call_next(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Headers"] = ", ".join(ALLOWED_HEADERS)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if "x-frame-options" in response.headers:
        del response.headers["x-frame-options"]
    return response


app.include_router(preview_router)
app.include_router(proxy_router)


@app.get("/", response_class=PlainTextResponse)
def root():
    return "Hello from the URL preview backend!"


@app.get("/health")
def health(request: Request):
    pool = getattr(request.app.state, "browser_pool", None)
    return {"status": "ok", "browsers": pool.stats() if pool else None}


def get_local_external_ip() -> str | None:
    """First non-loopback IPv4 address of this host, if one can be found."""
    try:
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            address = info[4][0]
            if not address.startswith("127."):
                return address
    except OSError:
        pass

    # Routing-table lookup; connect() on UDP sends nothing
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("10.255.255.255", 1))
            address = s.getsockname()[0]
            if not address.startswith("127."):
                return address
    except OSError:
        pass
    return None


def run():
    import uvicorn

    ip = get_local_external_ip()
    logger.info(f"Server is running at http://{ip or 'localhost'}:{config.PORT}")
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
