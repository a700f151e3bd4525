# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: platform-facing endpoints.
Thin HTTP layer — verifies the request, acknowledges at once, and hands the
work to a background task.
"""
import json

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import Response

from casebot.core.config import settings
from casebot.core.dependencies import get_command_router, get_evidence_service
from casebot.core.logging import get_logger
from casebot.schemas import SlashCommand
from casebot.services.command_router import CommandRouter
from casebot.services.evidence_service import EvidenceService
from casebot.services.signatures import SignatureVerificationError, verify_signature

logger = get_logger(__name__)

router = APIRouter(prefix="/slack", tags=["Slack"])


async def verified_body(request: Request) -> bytes:
    """Raw body, after the signature check when a signing secret is configured."""
    body = await request.body()
    if settings.SLACK_SIGNING_SECRET:
        try:
            verify_signature(
                signing_secret=settings.SLACK_SIGNING_SECRET,
                timestamp=request.headers.get("X-Slack-Request-Timestamp"),
                signature=request.headers.get("X-Slack-Signature"),
                raw_body=body,
            )
        except SignatureVerificationError as exc:
            logger.warning("Rejected unsigned request path=%s reason=%s",
                           request.url.path, exc.reason)
            raise HTTPException(status_code=401, detail="invalid signature")
    return body


@router.post("/commands")
async def slash_command(
    request: Request,
    background: BackgroundTasks,
    _body: bytes = Depends(verified_body),
    command_router: CommandRouter = Depends(get_command_router),
):
    """Acknowledge the slash command, then dispatch it in the background."""
    form = await request.form()
    command = SlashCommand(**{key: str(value) for key, value in form.items()})
    background.add_task(command_router.handle, command)
    return Response(status_code=200)


@router.post("/interactions")
async def interaction(
    request: Request,
    background: BackgroundTasks,
    _body: bytes = Depends(verified_body),
    evidence: EvidenceService = Depends(get_evidence_service),
):
    """Acknowledge a shortcut or modal submission, then process it in the background."""
    form = await request.form()
    try:
        payload = json.loads(form.get("payload") or "")
    except ValueError:
        raise HTTPException(status_code=400, detail="payload must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="payload must be a JSON object")
    background.add_task(evidence.handle_interaction, payload)
    return Response(status_code=200)
