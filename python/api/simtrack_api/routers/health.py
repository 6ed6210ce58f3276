"""Health, readiness, and metrics endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text

from simtrack_core.storage_backend import get_storage_backend

from ..db import engine
from ..metrics import registry

router = APIRouter()
logger = logging.getLogger("simtrack.api.health")


@router.get("/health")
def health():
    """Liveness probe: 200 while the process is up."""
    return {"ok": True}


@router.get("/health/ready")
def readiness():
    """Readiness probe: database and file storage must both answer."""
    checks: dict[str, str] = {}

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    try:
        checks["storage"] = get_storage_backend().health_check()
    except Exception as e:
        checks["storage"] = f"error: {e}"

    all_ok = all(v == "ok" for v in checks.values())
    if not all_ok:
        logger.warning("Readiness check failed: %s", checks, extra={"event": "health.not_ready"})

    return JSONResponse(
        content={"ok": all_ok, "checks": checks},
        status_code=200 if all_ok else 503,
    )


@router.get("/metrics")
def metrics():
    """Prometheus-compatible metrics endpoint."""
    return PlainTextResponse(registry.render(), media_type="text/plain; charset=utf-8")
