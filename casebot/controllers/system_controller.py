# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""System endpoints — health, readiness, metrics."""
from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from casebot.core.config import settings
from casebot.core.dependencies import get_case_repo, get_rate_governor
from casebot.core.errors import CollaboratorFailure
from casebot.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["System"])


@router.get("/health")
def health_check():
    return {"status": "ok", "service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}


@router.get("/health/ready")
def readiness_check():
    try:
        get_case_repo().verify_connection()
    except CollaboratorFailure as exc:
        logger.warning("Readiness check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "service": settings.SERVICE_NAME, "database": "unreachable"},
        )
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "database": "connected",
        "rate_limit_keys": len(get_rate_governor()),
    }


@router.get("/metrics")
def prometheus_metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
