from __future__ import annotations

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from control_plane.configs.logging_config import get_logger
from control_plane.errors import ErrorCode
from control_plane.repositories.mongo import ping_mongo
from control_plane.repositories.redis_client import redis_client
from control_plane.services.system_service import version_info
from control_plane.utils.response import failure, success
from control_plane.utils.time_utils import dt_to_iso, utc_now

log = get_logger(__name__)

DEGRADED_AFTER_MS = 1000

router = APIRouter(tags=["health"])


@router.get("/")
async def root(request: Request) -> dict:
    settings = request.app.state.settings
    return success(
        {"service": settings.SERVICE_NAME, "version": settings.API_VERSION},
        message="service running",
    )


@router.get("/health")
async def health() -> dict:
    return success({"ok": True}, message="healthy")


@router.get("/health/live")
async def live() -> dict:
    return success({"alive": True}, message="alive")


@router.get("/health/ready")
async def ready(request: Request):
    checks = {"mongo": False, "redis": False}
    mongo_db = getattr(request.app.state, "mongo_db", None)
    if mongo_db is not None:
        try:
            await ping_mongo(mongo_db)
            checks["mongo"] = True
        except Exception as e:
            log.warning("health.ready mongo_failed error=%s", str(e))
    try:
        checks["redis"] = await redis_client.ping()
    except Exception as e:
        log.warning("health.ready redis_failed error=%s", str(e))

    if all(checks.values()):
        return success(checks, message="ready")
    log.warning("health.ready not_ready checks=%s", checks)
    return JSONResponse(
        status_code=503,
        content={**failure(ErrorCode.INTERNAL_ERROR, "service not ready"), "checks": checks},
    )


async def _timed(check) -> dict:
    start = time.perf_counter()
    try:
        ok = await check()
    except Exception as e:
        log.warning("health.detailed check_failed error=%s", str(e))
        return {"status": "unhealthy", "error": e.__class__.__name__}
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    if ok is False:
        return {"status": "unhealthy", "response_time_ms": elapsed_ms}
    return {"status": "healthy", "response_time_ms": elapsed_ms}


@router.get("/health/detailed")
async def detailed(request: Request):
    mongo_db = getattr(request.app.state, "mongo_db", None)

    async def mongo_check():
        if mongo_db is None:
            return False
        await ping_mongo(mongo_db)

    services = {"database": await _timed(mongo_check), "cache": await _timed(redis_client.ping)}

    status = "healthy"
    if any(s["status"] == "unhealthy" for s in services.values()):
        status = "unhealthy"
    elif any(s.get("response_time_ms", 0) > DEGRADED_AFTER_MS for s in services.values()):
        status = "degraded"

    body = {
        "status": status,
        "timestamp": dt_to_iso(utc_now()),
        "version": request.app.state.settings.API_VERSION,
        "services": services,
    }
    system = getattr(request.app.state, "system_service", None)
    if system is not None:
        body["maintenance"] = system.maintenance["enabled"]
    if status == "unhealthy":
        log.warning("health.detailed unhealthy services=%s", services)
        return JSONResponse(status_code=503, content=body)
    return body


@router.get("/version")
async def version(request: Request) -> dict:
    return success(version_info(request.app.state.settings))
