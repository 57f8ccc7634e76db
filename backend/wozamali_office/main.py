"""FastAPI application entrypoint.

This module builds the Woza Mali office API. Controllers live in
`routers/` and stay thin: they check the caller's role, delegate to
services and return JSON.

Areas:
- /api/auth/*: login, profile, admin self-registration
- /api/admin/*: users, materials, pickups, wallets, withdrawals,
  Green Scholar Fund, content, Discover & Earn, watch-ads, dashboard,
  exports and export requests
- /api/collector/collections: collector pickup submission
- /api/withdrawals, /api/green-scholar/*, /api/watch-ads/*, /api/hero-slides,
  /api/community-events, /api/rewards/{id}/redeem
- /health
"""

import json
import logging
import os
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response

from .config import settings
from .database import create_db_and_tables
from .errors import setup_exception_handlers
from .routers import account, collections, content, dashboard, engagement, finance, green_scholar, users, watch_ads

app = FastAPI(title="Woza Mali Office API")
logger = logging.getLogger("office.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", settings.LOG_LEVEL))

# The office front end runs on its own origin during development.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

setup_exception_handlers(app)
create_db_and_tables()

for _router in (account, users, collections, finance, green_scholar, content, engagement, watch_ads, dashboard):
    app.include_router(_router.router)


def _request_log_line(request: Request, req_id: str, elapsed_ms: float, status_code=None) -> str:
    payload = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": elapsed_ms,
        "client": request.client.host if request.client else "unknown",
    }
    if status_code is not None:
        payload["status_code"] = status_code
    return json.dumps(payload, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        if request.url.path.startswith("/api"):
            logger.exception("request_failed %s", _request_log_line(request, req_id, elapsed_ms))
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith("/api"):
        logger.info("request_done %s", _request_log_line(request, req_id, elapsed_ms, response.status_code))
    return response


@app.get("/", response_class=HTMLResponse)
def home():
    """Minimal homepage for quick manual testing."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
      <meta charset="UTF-8" />
      <title>Woza Mali Office API</title>
      <style>
        body { font-family: Arial, sans-serif; margin: 32px; }
        a { color: #0a6; }
        .card { max-width: 640px; padding: 16px; border: 1px solid #ddd; border-radius: 8px; }
      </style>
    </head>
    <body>
      <div class="card">
        <h1>Woza Mali Office API</h1>
        <ul>
          <li><a href="/docs">Swagger UI</a></li>
          <li><a href="/health">Health check</a></li>
        </ul>
        <p>Use <code>/api/auth/login</code> to get a token, then try <code>/api/admin/dashboard</code>.</p>
      </div>
    </body>
    </html>
    """


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
