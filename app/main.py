import logging

from fastapi import FastAPI

from .config import settings
from .db import ensure_schema
from .routers import auto_checkout_api

# --- Logging configuration ---
_level = logging.DEBUG if getattr(settings, "DEBUG", False) else logging.INFO
logging.basicConfig(
    level=_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
# Align uvicorn loggers with our level (useful under Docker Compose)
for _name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(_name).setLevel(_level)
logger = logging.getLogger("app.startup")
logger.info("Starting %s (DEBUG=%s, TIMEZONE=%s)", settings.APP_NAME, getattr(settings, "DEBUG", False), settings.TIMEZONE)

app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    description=(
        f"{settings.APP_NAME}: daily automatic checkout for hotel bookings.\n\n"
        "Use the 'auto-checkout' tag to trigger a run or inspect its status."
    ),
)

@app.on_event("startup")
def startup_event():
    """Runs startup tasks, like ensuring the schema exists."""
    logger.info("Running startup tasks...")
    ensure_schema()
    logger.info("Startup tasks complete.")


app.include_router(auto_checkout_api.router)

@app.get("/healthz")
def healthz():
    return {"status": "ok"}
