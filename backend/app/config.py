import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3333"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ── Screenshot browser pool ──
SCREENSHOT_POOL_SIZE = int(os.getenv("SCREENSHOT_POOL_SIZE", "2"))
SCREENSHOT_IDLE_TIMEOUT = float(os.getenv("SCREENSHOT_IDLE_TIMEOUT", "300"))
SCREENSHOT_REAP_INTERVAL = float(os.getenv("SCREENSHOT_REAP_INTERVAL", "30"))
SCREENSHOT_ACQUIRE_TIMEOUT = float(os.getenv("SCREENSHOT_ACQUIRE_TIMEOUT", "60"))
SCREENSHOT_STEALTH = _env_bool("SCREENSHOT_STEALTH")

# ── Upstream HTTP ──
PREVIEW_FETCH_TIMEOUT = float(os.getenv("PREVIEW_FETCH_TIMEOUT", "15"))
PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "30"))

# Empty means any host may be proxied
PROXY_ALLOWED_HOSTS = [
    h.strip().lower()
    for h in os.getenv("PROXY_ALLOWED_HOSTS", "").split(",")
    if h.strip()
]
