# src/deckproxy/main.py
from __future__ import annotations

import datetime as dt
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from deckproxy import __version__
from deckproxy.core.config import settings
from deckproxy.core.logging import get_logger
from deckproxy.core.metrics import MetricsMiddleware, metrics_app
from deckproxy.core.request_context_middleware import RequestContextMiddleware
from deckproxy.kernel.errors import ProblemDetails
from deckproxy.services.fetch import ResourceFetcher
from deckproxy.services.upstream import UpstreamClient

from deckproxy.api.routes.proxy import router as proxy_router
from deckproxy.api.routes.tasks import router as tasks_router

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.fetcher = ResourceFetcher()
    app.state.upstream = UpstreamClient()
    log.info("%s %s up (env=%s, allowlist=%s)", settings.APP_NAME, __version__, settings.ENV,
             ",".join(settings.allowed_patterns()) or "-")
    try:
        yield
    finally:
        await app.state.fetcher.aclose()
        await app.state.upstream.aclose()


app = FastAPI(title="Deck Download Proxy", version=__version__, lifespan=lifespan)

# ---- Middlewares (order matters) ----
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Payload-Kind", "X-Request-ID"],
)


@app.exception_handler(ProblemDetails)
async def problem_handler(request: Request, exc: ProblemDetails):
    if exc.status >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        log.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status, content={"error": exc.to_dict()})


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": dt.datetime.now(dt.timezone.utc).isoformat()}


# Prometheus metrics
app.mount("/metrics", metrics_app)

# ---- Routers ----
app.include_router(proxy_router, tags=["proxy"])
app.include_router(tasks_router)

# Static front end last so API routes win
if settings.PUBLIC_DIR and os.path.isdir(settings.PUBLIC_DIR):
    app.mount("/", StaticFiles(directory=settings.PUBLIC_DIR, html=True), name="public")
