# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Command router — the admission pipeline in front of every handler.

    access gate ─► rate governor ─► validate + parse ─► route ─► handler

Each stage short-circuits with an ephemeral reply. This is the only place an
Err or an exception becomes user-visible text.
"""
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from pydantic import TypeAdapter

from casebot.core.errors import (
    GENERIC_ERROR_MESSAGE, CollaboratorFailure, Err, ErrorKind, ValidationError,
    safe_error_message,
)
from casebot.core.logging import get_logger
from casebot.metrics import ACCESS_DENIED, COMMANDS_TOTAL
from casebot.schemas import CommandContext, CommandRequest, CommandResponse, SlashCommand
from casebot.services.access_gate import (
    EXTERNAL_USER_MESSAGE, MISSING_CONTEXT_MESSAGE, TENANT_NOT_ALLOWED_MESSAGE, AccessGate,
)
from casebot.services.command_handlers import CommandHandlers
from casebot.services.rate_governor import RateGovernor
from casebot.services.slack_client import SlackClient
from casebot.services.validation import (
    parse_command, sanitize_input, validate_identity_token, validate_origin_token,
)

logger = get_logger(__name__)

UNKNOWN_COMMAND = "⚠️ Unknown command: `{verb}`. Use `/case help` for available commands."
UNSUPPORTED_COMMAND = "Unsupported slash command"

# verb -> handler method on CommandHandlers
ROUTES: Dict[str, str] = {
    "create": "create",
    "status": "status",
    "incident": "incident",
    "list": "list_investigations",
    "close": "close",
    "transfer": "transfer",
    "resolve": "resolve",
    "stats": "stats",
    "export": "export",
    "help": "help",
}
VERB_ALIASES: Dict[str, str] = {"open": "create", "": "help"}
# verb -> request field that receives the text after the verb
REMAINDER_FIELDS: Dict[str, str] = {"create": "title", "transfer": "target"}

DENIAL_REASONS = {
    MISSING_CONTEXT_MESSAGE: "missing_context",
    EXTERNAL_USER_MESSAGE: "external_user",
    TENANT_NOT_ALLOWED_MESSAGE: "tenant_not_allowed",
}

_request_adapter = TypeAdapter(CommandRequest)


def build_request(verb: str, context: CommandContext, remainder: str):
    """Construct the closed per-verb request type."""
    data = {"verb": verb, "context": context}
    if verb in REMAINDER_FIELDS:
        data[REMAINDER_FIELDS[verb]] = remainder
    return _request_adapter.validate_python(data)


def audit_denial(reason: str, identity: str, tenant: str, is_external: bool,
                 action: str, federation_id: Optional[str] = None) -> None:
    """Structured audit entry for every blocked admission decision."""
    logger.warning(
        "Access denied",
        extra={"context": {
            "reason": reason,
            "user_id": identity,
            "team_id": tenant,
            "enterprise_id": federation_id,
            "is_external": is_external,
            "command": action,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }},
    )


class CommandRouter:
    def __init__(self, gate: AccessGate, governor: RateGovernor, handlers: CommandHandlers,
                 slack: Optional[SlackClient] = None, slash_command: str = "/case") -> None:
        self._gate = gate
        self._governor = governor
        self._slack = slack
        self._slash_command = slash_command
        self._table: Dict[str, Callable] = {
            verb: getattr(handlers, method) for verb, method in ROUTES.items()
        }

    def handle(self, cmd: SlashCommand) -> CommandResponse:
        """Dispatch, then deliver the reply through the command's response URL."""
        response = self.dispatch(cmd)
        if self._slack is not None and cmd.response_url:
            try:
                self._slack.respond(cmd.response_url, response.to_payload())
            except CollaboratorFailure as exc:
                logger.warning("Reply delivery failed user=%s channel=%s: %s",
                               cmd.user_id, cmd.channel_id, exc)
        return response

    def dispatch(self, cmd: SlashCommand) -> CommandResponse:
        # 1. access gate
        denial = self._gate.decide(cmd.user_id, cmd.team_id, cmd.enterprise_id)
        if denial is not None:
            reason = DENIAL_REASONS.get(denial, "denied")
            is_external = self._gate.classify(cmd.user_id, cmd.team_id, cmd.enterprise_id).is_external
            audit_denial(reason, cmd.user_id, cmd.team_id, is_external,
                         _first_word(cmd.text), cmd.enterprise_id)
            ACCESS_DENIED.labels(reason=reason).inc()
            return self._finish("none", "denied", CommandResponse.ephemeral(denial))

        # 2. rate governor
        admission = self._governor.admit(cmd.team_id, cmd.user_id, cmd.command or self._slash_command)
        if not admission.allowed:
            logger.info("Rate limited user=%s team=%s retry_after=%s",
                        cmd.user_id, cmd.team_id, admission.retry_after_seconds)
            return self._finish("none", "rate_limited", CommandResponse.ephemeral(admission.message))

        # 3. validate + parse
        try:
            if cmd.command and cmd.command != self._slash_command:
                raise ValidationError(UNSUPPORTED_COMMAND)
            validate_identity_token(cmd.user_id)
            validate_origin_token(cmd.channel_id)
            parsed = parse_command(cmd.text)
        except ValidationError as exc:
            logger.info("Command rejected user=%s: %s", cmd.user_id, exc)
            return self._finish("none", "invalid", CommandResponse.ephemeral(safe_error_message(exc)))

        # 4. route
        verb = VERB_ALIASES.get(parsed.verb, parsed.verb)
        handler = self._table.get(verb)
        if handler is None:
            return self._finish(
                "unknown", "unknown",
                CommandResponse.ephemeral(UNKNOWN_COMMAND.format(verb=sanitize_input(parsed.verb))),
            )

        # 5. invoke
        context = CommandContext(
            user_id=cmd.user_id, team_id=cmd.team_id,
            channel_id=cmd.channel_id, team_domain=cmd.team_domain,
        )
        try:
            result = handler(build_request(verb, context, parsed.remainder))
        except Exception:
            logger.exception("Handler failed verb=%s user=%s channel=%s",
                             verb, cmd.user_id, cmd.channel_id)
            return self._finish(verb, "error", CommandResponse.ephemeral(GENERIC_ERROR_MESSAGE))

        if isinstance(result, Err):
            if result.kind is ErrorKind.COLLABORATOR:
                logger.error("Command failed verb=%s channel=%s: %s", verb, cmd.channel_id, result.detail)
                outcome = "error"
            else:
                outcome = "rejected"
            return self._finish(verb, outcome, CommandResponse.ephemeral(safe_error_message(result)))
        return self._finish(verb, "ok", result.value)

    @staticmethod
    def _finish(verb: str, outcome: str, response: CommandResponse) -> CommandResponse:
        COMMANDS_TOTAL.labels(verb=verb, outcome=outcome).inc()
        return response


def _first_word(text: str) -> str:
    parts = (text or "").split(None, 1)
    return sanitize_input(parts[0].lower()) if parts else ""
