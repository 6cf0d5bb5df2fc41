"""
FastAPI app entrypoint.

Feed snapshot + price sync: the batch price updater runs on a BackgroundScheduler interval;
pages read feed.json through the in-process cache.
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from app.api.routes import feed, posts, quotes, revalidate
from app.config import settings
from app.core.constants import PRICE_UPDATE_JOB_ID
from app.core.errors import FeedSyncError, domain_error_to_http
from app.db.session import SessionLocal
from app.scheduler.price_update_job import run_price_update_job
from app.services.container import build_services

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services(settings, SessionLocal)
        app.state.services = services
    interval = services.settings.price_update_interval_minutes
    scheduler = BackgroundScheduler()
    if interval > 0:
        scheduler.add_job(
            run_price_update_job,
            "interval",
            minutes=interval,
            id=PRICE_UPDATE_JOB_ID,
            args=[services],
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Price update job every %s min", interval)
    logger.info("Backend ready (blob backend: %s)", services.settings.blob_backend)
    yield
    if scheduler.running:
        scheduler.shutdown(wait=False)
    services.close()


app = FastAPI(title="Feed Price Sync", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS (comma-separated) for the production frontend
_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
_cors_extra = settings.cors_origins or os.getenv("CORS_ORIGINS", "")
if _cors_extra:
    _cors_origins.extend(o.strip() for o in _cors_extra.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FeedSyncError)
async def feed_sync_error_handler(request: Request, exc: FeedSyncError):
    http = domain_error_to_http(exc)
    if http.status_code >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, http.status_code, exc)
    return JSONResponse(status_code=http.status_code, content={"detail": http.detail}, headers=http.headers)


app.include_router(feed.router, prefix="/feed", tags=["feed"])
app.include_router(posts.router, prefix="/posts", tags=["posts"])
app.include_router(quotes.router, prefix="/quotes", tags=["quotes"])
app.include_router(revalidate.router, tags=["revalidate"])


@app.get("/", include_in_schema=False)
def root():
    return {"message": "Feed Price Sync API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
