from __future__ import annotations

import logging
import os
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from simtrack_core.logging_config import configure_logging, request_id_var

# Configure structured logging before anything else
configure_logging("api")

from .settings import settings
from .db import engine, init_db
from .metrics import registry
from .repository import SqlTrackerRepository
from .seed import seed_demo_data
from .routers.health import router as health_router
from .routers.auth import router as auth_router
from .routers.projects import router as projects_router
from .routers.jobs import router as jobs_router
from .routers.files import router as files_router

logger = logging.getLogger("simtrack.api")

app = FastAPI(title="SimTrack API", version="0.1.0")


# ── Request ID middleware ──────────────────────────────────────────
# Propagates a unique ID through every request for log correlation.

class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = rid
        request_id_var.set(rid)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        response.headers["X-Request-ID"] = rid

        logger.info(
            "%s %s %s %.0fms",
            request.method, request.url.path,
            response.status_code, duration_ms,
            extra={
                "event": "http.request",
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "request_id": rid,
            },
        )

        registry.inc("http_requests_total", {"method": request.method, "status": str(response.status_code)})
        registry.observe("http_request_duration_ms", duration_ms)

        return response


class CSRFMiddleware(BaseHTTPMiddleware):
    """Reject state-changing browser requests from origins outside the CORS list."""

    async def dispatch(self, request: Request, call_next):
        if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
            origin = request.headers.get("origin")
            if origin and origin not in settings.cors_origins and "*" not in settings.cors_origins:
                return JSONResponse(status_code=403, content={"detail": "Invalid request origin"})

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


app.add_middleware(RequestIDMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(CSRFMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error envelopes ────────────────────────────────────────────────

@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {key: err[key] for key in ("loc", "msg", "type") if key in err}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request data", "errors": jsonable_encoder(errors)},
    )


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error",
        extra={"event": "http.unhandled_error", "method": request.method, "path": request.url.path},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
def _startup():
    os.makedirs(settings.data_dir, exist_ok=True)
    os.makedirs(settings.files_dir, exist_ok=True)
    init_db()

    if settings.seed_demo_data:
        with Session(engine) as session:
            seed_demo_data(SqlTrackerRepository(session))


app.include_router(health_router, prefix="/api", tags=["health"])
app.include_router(auth_router, prefix="/api", tags=["auth"])
app.include_router(projects_router, prefix="/api", tags=["projects"])
app.include_router(jobs_router, prefix="/api", tags=["jobs"])
app.include_router(files_router, prefix="/api", tags=["files"])
