# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Evidence capture — the "Add to Investigation" message shortcut and its
investigation picker modal.
"""
import json
from typing import Any, Dict, List, Optional

from casebot.core.errors import CollaboratorFailure, Err, Result, precondition, safe_error_message
from casebot.core.logging import get_logger
from casebot.metrics import ACCESS_DENIED
from casebot.models.domain import Investigation
from casebot.repositories.case_repository import CaseRepository
from casebot.services.access_gate import EXTERNAL_USER_MESSAGE, AccessGate
from casebot.services.command_router import DENIAL_REASONS, audit_denial
from casebot.services.formatters import context, section
from casebot.services.lifecycle import LifecycleEngine
from casebot.services.rate_governor import RateGovernor
from casebot.services.slack_client import SlackClient

logger = get_logger(__name__)

SHORTCUT_CALLBACK_ID = "add_event_to_investigation"
PICKER_CALLBACK_ID = "select_investigation_for_event"
PICKER_BLOCK_ID = "investigation_select"
PICKER_ACTION_ID = "selected_investigation"

EXTERNAL_ACTION_MESSAGE = "⚠️ This action is not available for external users."
NO_ACTIVE_FOR_EVIDENCE = "⚠️ No active investigations found. Create one with `/case create [title]`"
ADD_EVENT_FAILED = "⚠️ Failed to add event. Please try again."
NO_SELECTION = "⚠️ Please choose an investigation."


def message_permalink(team_domain: Optional[str], channel_id: str, message_ts: str) -> str:
    domain = team_domain or "workspace"
    return f"https://{domain}.slack.com/archives/{channel_id}/p{message_ts.replace('.', '')}"


def _option_label(inv: Investigation) -> str:
    title = inv.title if len(inv.title) <= 30 else inv.title[:30] + "..."
    return f"{inv.name} - {title}"


def build_picker_view(investigations: List[Investigation], channel_id: str,
                      message_ts: str, team_domain: Optional[str]) -> Dict[str, Any]:
    return {
        "type": "modal",
        "callback_id": PICKER_CALLBACK_ID,
        "private_metadata": json.dumps({
            "channelId": channel_id,
            "messageTs": message_ts,
            "teamDomain": team_domain or "workspace",
        }),
        "title": {"type": "plain_text", "text": "Add Event"},
        "blocks": [
            section("Select the investigation to add this message to:"),
            {
                "type": "input",
                "block_id": PICKER_BLOCK_ID,
                "label": {"type": "plain_text", "text": "Investigation"},
                "element": {
                    "type": "static_select",
                    "action_id": PICKER_ACTION_ID,
                    "placeholder": {"type": "plain_text", "text": "Choose an investigation"},
                    "options": [
                        {"text": {"type": "plain_text", "text": _option_label(inv)}, "value": inv.id}
                        for inv in investigations
                    ],
                },
            },
        ],
        "submit": {"type": "plain_text", "text": "Add Event"},
    }


class EvidenceService:
    def __init__(self, gate: AccessGate, governor: RateGovernor, engine: LifecycleEngine,
                 repo: CaseRepository, slack: SlackClient, list_limit: int = 25) -> None:
        self._gate = gate
        self._governor = governor
        self._engine = engine
        self._repo = repo
        self._slack = slack
        self._list_limit = list_limit

    def handle_interaction(self, payload: Dict[str, Any]) -> Optional[Result]:
        kind = payload.get("type")
        if kind == "message_action" and payload.get("callback_id") == SHORTCUT_CALLBACK_ID:
            return self.on_shortcut(payload)
        if kind == "view_submission" and payload.get("view", {}).get("callback_id") == PICKER_CALLBACK_ID:
            return self.on_submission(payload)
        logger.debug("Ignoring interaction type=%s", kind)
        return None

    def on_shortcut(self, payload: Dict[str, Any]) -> Optional[Result]:
        user = payload.get("user", {}).get("id", "")
        team = payload.get("team") or {}
        channel = payload.get("channel", {}).get("id", "")
        message_ts = payload.get("message", {}).get("ts", "")
        enterprise_id = (payload.get("enterprise") or {}).get("id")

        if not self._admitted(user, team.get("id", ""), channel, enterprise_id):
            return None
        try:
            investigations = self._repo.list_active(self._list_limit)
            if not investigations:
                self._notify(channel, user, NO_ACTIVE_FOR_EVIDENCE)
                return precondition(NO_ACTIVE_FOR_EVIDENCE)
            if len(investigations) == 1:
                return self.record(investigations[0].id, channel, message_ts, user, team.get("domain"))
            self._slack.open_modal(
                payload.get("trigger_id", ""),
                build_picker_view(investigations, channel, message_ts, team.get("domain")),
            )
            return None
        except CollaboratorFailure as exc:
            logger.error("Evidence shortcut failed user=%s channel=%s: %s", user, channel, exc)
            self._notify(channel, user, ADD_EVENT_FAILED)
            return None

    def on_submission(self, payload: Dict[str, Any]) -> Optional[Result]:
        user = payload.get("user", {}).get("id", "")
        team_id = (payload.get("team") or {}).get("id", "")
        view = payload.get("view", {})
        metadata = json.loads(view.get("private_metadata") or "{}")
        channel = metadata.get("channelId", "")
        selected = (
            view.get("state", {}).get("values", {}).get(PICKER_BLOCK_ID, {})
            .get(PICKER_ACTION_ID, {}).get("selected_option") or {}
        ).get("value")

        denial = self._gate.decide(user, team_id)
        if denial is not None:
            self._deny(denial, user, team_id, None)
            return None
        if not selected:
            self._notify(channel, user, NO_SELECTION)
            return precondition(NO_SELECTION)
        return self.record(selected, channel, metadata.get("messageTs", ""), user,
                           metadata.get("teamDomain"))

    def record(self, investigation_id: str, channel: str, message_ts: str, user: str,
               team_domain: Optional[str]) -> Result:
        url = message_permalink(team_domain, channel, message_ts)
        result = self._engine.add_event(investigation_id, url, user)
        if isinstance(result, Err):
            self._notify(channel, user, safe_error_message(result))
            return result

        added = result.value
        inv = added.investigation
        try:
            self._slack.post_message(inv.channel_id, f"New event added to investigation {inv.name}", [
                section(f"✅ New event added to investigation *{inv.name}*"),
                section(f"📎 <{url}|View message> from <#{channel}>"),
                context(f"Added by: <@{user}> • Total events: {added.event_count}"),
            ])
        except CollaboratorFailure as exc:
            logger.warning("Evidence confirmation to %s failed: %s", inv.channel_id, exc)
        self._notify(channel, user,
                     f"✅ Event added to investigation *{inv.name}* in <#{inv.channel_id}>")
        return result

    # ── Private ───────────────────────────────────────────────────────

    def _admitted(self, user: str, team_id: str, channel: str,
                  enterprise_id: Optional[str]) -> bool:
        denial = self._gate.decide(user, team_id, enterprise_id)
        if denial is not None:
            self._deny(denial, user, team_id, enterprise_id)
            notice = EXTERNAL_ACTION_MESSAGE if denial == EXTERNAL_USER_MESSAGE else denial
            self._notify(channel, user, notice)
            return False
        admission = self._governor.admit(team_id, user, SHORTCUT_CALLBACK_ID)
        if not admission.allowed:
            self._notify(channel, user, admission.message)
            return False
        return True

    def _deny(self, denial: str, user: str, team_id: str, enterprise_id: Optional[str]) -> None:
        reason = DENIAL_REASONS.get(denial, "denied")
        audit_denial(reason, user, team_id,
                     self._gate.classify(user, team_id, enterprise_id).is_external,
                     SHORTCUT_CALLBACK_ID, enterprise_id)
        ACCESS_DENIED.labels(reason=reason).inc()

    def _notify(self, channel: str, user: str, text: str) -> None:
        if not channel or not user:
            return
        try:
            self._slack.post_ephemeral(channel, user, text)
        except CollaboratorFailure as exc:
            logger.warning("Ephemeral notice to %s in %s failed: %s", user, channel, exc)
