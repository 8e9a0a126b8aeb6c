"""
pickup_api/main.py: iPhone pickup availability API
Startup: launches the periodic snapshot refresh.
Reads are served edge cache → KV snapshot → warm-up placeholder.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse, PlainTextResponse, Response

from pickup_api.core.config import SCHEDULER_ENABLED
from pickup_api.core.http_client import close_all
from pickup_api.core.scheduler import run_scheduler
from pickup_api.routers import availability, dashboard

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("main")

CORS_HEADERS = {
    "Access-Control-Allow-Origin":  "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("🚀 iPhone pickup API starting...")
    task = asyncio.create_task(run_scheduler()) if SCHEDULER_ENABLED else None
    yield
    log.info("🛑 Shutting down...")
    if task:
        task.cancel()
    await close_all()


app = FastAPI(
    title="iPhone Pickup Availability API",
    description=(
        "Snapshot of apple.com in-store pickup availability for iPhone models. "
        "Part numbers from buy pages, stores from the fulfillment API. "
        "Edge cache → KV snapshot → warm-up, refreshed in the background."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

class PreflightMiddleware:
    """Every OPTIONS request gets an empty 204 with the CORS allowances."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            await Response(status_code=204, headers=CORS_HEADERS)(scope, receive, send)
            return
        await self.app(scope, receive, send)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.add_middleware(PreflightMiddleware)

# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(dashboard.router)
app.include_router(availability.router)


@app.get("/healthz", tags=["meta"], response_class=PlainTextResponse)
async def healthz():
    return "ok"


# ── Errors ───────────────────────────────────────────────────────────────────

@app.exception_handler(StarletteHTTPException)
async def not_found(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return PlainTextResponse("Not Found", status_code=404)
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def server_error(request: Request, exc: Exception):
    log.error(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        {"error": str(exc) or "unknown error"},
        status_code=500,
        headers={"Access-Control-Allow-Origin": "*"},
    )
