# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection — wire repositories, gateways, and services.
"""
from casebot.core.config import settings
from casebot.core.database import engine
from casebot.repositories.case_repository import CaseRepository
from casebot.services.access_gate import AccessGate
from casebot.services.command_handlers import CommandHandlers
from casebot.services.command_router import CommandRouter
from casebot.services.evidence_service import EvidenceService
from casebot.services.lifecycle import LifecycleEngine
from casebot.services.pagerduty_client import PagerDutyClient
from casebot.services.rate_governor import RateGovernor
from casebot.services.slack_client import SlackClient

# ── Singletons ──
_repo = CaseRepository(engine)
_slack = SlackClient()
_pager = PagerDutyClient()
_gate = AccessGate(settings.ALLOWED_WORKSPACE_IDS)
_governor = RateGovernor(
    max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    block_seconds=settings.RATE_LIMIT_BLOCK_SECONDS,
)
_engine = LifecycleEngine(_repo, max_name_attempts=settings.NAME_MAX_ATTEMPTS)
_handlers = CommandHandlers(
    _engine, _repo, _slack, _pager,
    announce_channel=settings.POTENTIAL_ISSUES_CHANNEL_ID,
    export_authorized=settings.EXPORT_AUTHORIZED_USERS,
    list_limit=settings.LIST_LIMIT,
)
_router = CommandRouter(_gate, _governor, _handlers, _slack, slash_command=settings.SLASH_COMMAND)
_evidence = EvidenceService(_gate, _governor, _engine, _repo, _slack, list_limit=settings.LIST_LIMIT)


# ── FastAPI dependency functions ──
def get_case_repo() -> CaseRepository:
    return _repo


def get_rate_governor() -> RateGovernor:
    return _governor


def get_command_router() -> CommandRouter:
    return _router


def get_evidence_service() -> EvidenceService:
    return _evidence
