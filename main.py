# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Casebot
=======
Slash-command incident-investigation assistant: open an investigation,
attach evidence, escalate to an incident, transfer command, resolve, close.

Every command passes access gate ─► rate governor ─► validation before a
handler runs; lifecycle transitions are guarded and applied exactly once.

Port: 3000
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from casebot.controllers import slack_controller, system_controller
from casebot.core.config import settings
from casebot.core.dependencies import get_case_repo, get_rate_governor
from casebot.core.errors import CollaboratorFailure
from casebot.core.logging import get_logger
from casebot.middleware import MetricsMiddleware, RequestIDMiddleware

logger = get_logger(settings.SERVICE_NAME)


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None


# ── Lifespan ──────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Ensure the schema and start the rate-governor sweeper; stop both on shutdown."""
    repo = get_case_repo()
    governor = get_rate_governor()
    try:
        repo.create_schema()
    except CollaboratorFailure as exc:
        logger.error("Schema setup FAILED — service will start but DB calls will fail: %s", exc)
    governor.start_sweeper()
    logger.info("%s %s started", settings.SERVICE_NAME, settings.SERVICE_VERSION)
    yield
    governor.stop_sweeper()
    repo.dispose()
    logger.info("Database connection pool disposed — shutting down")


# ── FastAPI App ───────────────────────────────────────────────────────────
app = FastAPI(
    title="Casebot",
    description="Slash-command incident investigation assistant.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    responses={
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)

app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


# ── Global exception handler ─────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled exception", extra={"request_id": req_id})
    return JSONResponse(
        status_code=500,
        content={"error": "internal_server_error", "request_id": req_id},
    )


app.include_router(system_controller.router)
app.include_router(slack_controller.router)


# ── Entrypoint ────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000, log_level="info")
