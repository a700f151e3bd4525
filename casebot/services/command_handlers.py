# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Command handlers — one per verb.

Each handler takes its typed request and returns Ok(CommandResponse) or the
Err the lifecycle engine produced. Gateway calls happen only after the engine
has committed; their failures are logged and reported as a degraded success.
"""
import csv
import io
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from casebot.core.errors import CollaboratorFailure, Ok, Result
from casebot.core.logging import get_logger
from casebot.models.domain import Investigation
from casebot.repositories.case_repository import CaseRepository
from casebot.schemas import (
    CloseRequest, CommandResponse, CreateRequest, ExportRequest, HelpRequest,
    IncidentRequest, ListRequest, ResolveRequest, StatsRequest, StatusRequest,
    TransferRequest,
)
from casebot.services.formatters import (
    DIVIDER, context, fields_section, format_duration, format_minutes, header,
    leaderboard, list_entry, section, status_label,
)
from casebot.services.lifecycle import LifecycleEngine
from casebot.services.pagerduty_client import PagerDutyClient
from casebot.services.slack_client import SlackClient

logger = get_logger(__name__)

NOT_AUTHORIZED_TO_EXPORT = "🔒 You are not authorized to export data. Please contact your administrator."
NOTHING_TO_EXPORT = "No investigations found to export."
NO_ACTIVE_INVESTIGATIONS = "No active investigations found. Create one with `/case create [title]`"
PAGING_FAILED_NOTE = "⚠️ The on-call page could not be sent. Please page the responder manually."
ARCHIVE_FAILED_NOTE = "⚠️ The channel could not be archived automatically."

EXPORT_COLUMNS = (
    "Investigation Name", "Title", "Status", "Channel ID", "Created By", "Created At",
    "Closed By", "Closed At", "Events Count", "Duration (hours)", "Escalated to Incident",
    "Incident Commander", "Escalated At", "Resolved By", "Resolved At",
    "Resolution Time (hours)",
)

HELP_COMMANDS = (
    "• `/case create [title]` - Open a new case and begin investigation (alias: `open`)\n"
    "• `/case list` - Review all active cases\n"
    "• `/case stats` - Analyze case metrics and patterns\n"
    "• `/case export` - Export case files to CSV\n"
    "• `/case status` - Check case details and progress\n"
    "• `/case incident` - Escalate to incident (in investigation channels)\n"
    "• `/case resolve` - Resolve incident when service is restored (for incidents only)\n"
    "• `/case transfer @user` - Transfer incident commander role (for incidents only)\n"
    "• `/case close` - Close the case and archive evidence\n"
    "• `/case help` - Show this help message"
)
HELP_EVIDENCE = (
    "*Gathering Evidence:*\nTo collect evidence for your case:\n"
    "1. Click the three dots (⋯) on any message\n"
    "2. Select \"Add to Investigation\" from the shortcuts menu"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: Optional[datetime]) -> str:
    return moment.isoformat() if moment else ""


def _hours(start: datetime, end: datetime) -> str:
    return f"{(end - start).total_seconds() / 3600:.2f}"


def build_export_csv(investigations: Iterable[Investigation], now: datetime) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for inv in investigations:
        incident = inv.incident
        writer.writerow([
            inv.name,
            inv.title,
            inv.status,
            inv.channel_id,
            inv.created_by,
            _iso(inv.created_at),
            inv.closed_by or "",
            _iso(inv.closed_at),
            inv.event_count,
            _hours(inv.created_at, inv.closed_at or now),
            "Yes" if incident else "No",
            incident.incident_commander if incident else "",
            _iso(incident.escalated_at) if incident else "",
            (incident.resolved_by or "") if incident else "",
            _iso(incident.resolved_at) if incident else "",
            _hours(incident.escalated_at, incident.resolved_at)
            if incident and incident.resolved_at else "",
        ])
    return buf.getvalue()


class CommandHandlers:
    def __init__(self, engine: LifecycleEngine, repo: CaseRepository, slack: SlackClient,
                 pager: PagerDutyClient, announce_channel: str = "",
                 export_authorized: Iterable[str] = (), list_limit: int = 25,
                 clock: Callable[[], datetime] = _utcnow) -> None:
        self._engine = engine
        self._repo = repo
        self._slack = slack
        self._pager = pager
        self._announce_channel = announce_channel
        self._export_authorized = frozenset(export_authorized)
        self._list_limit = list_limit
        self._clock = clock

    # ── Lifecycle verbs ───────────────────────────────────────────────

    def create(self, request: CreateRequest) -> Result:
        ctx = request.context
        result = self._engine.create(ctx.channel_id, request.title, ctx.user_id)
        if not result.ok:
            return result
        inv = result.value
        self._announce([
            section(f"🔍 New investigation opened: *{inv.name}*"),
            section(f"*Title:* {inv.title}\n*Channel:* <#{inv.channel_id}>\n*Opened by:* <@{inv.created_by}>"),
        ], f"New investigation opened: {inv.name}")
        return Ok(CommandResponse(response_type="in_channel", blocks=[
            section(f"✅ Investigation created: *{inv.name}*"),
            section(f"*Title:* {inv.title}\n*Channel:* <#{inv.channel_id}>\n*Created by:* <@{inv.created_by}>"),
            context("Use the *Add to Investigation* message shortcut to attach evidence to this investigation"),
        ]))

    def incident(self, request: IncidentRequest) -> Result:
        ctx = request.context
        result = self._engine.escalate(ctx.channel_id, ctx.user_id)
        if not result.ok:
            return result
        inv = result.value
        blocks = [
            section("🚨 *Investigation escalated to incident*"),
            section(
                f"*Investigation:* {inv.name}\n*Title:* {inv.title}\n"
                f"*Incident Commander:* <@{inv.incident.incident_commander}>"
            ),
            context(f"Escalated at {inv.incident.escalated_at.isoformat()}"),
        ]
        if self._pager.enabled and not self._pager.trigger_incident(
            inv.id, inv.name, inv.title, inv.channel_id,
            inv.incident.incident_commander, ctx.team_domain,
        ):
            blocks.append(context(PAGING_FAILED_NOTE))
        return Ok(CommandResponse(response_type="in_channel", blocks=blocks))

    def transfer(self, request: TransferRequest) -> Result:
        ctx = request.context
        result = self._engine.transfer(ctx.channel_id, request.target, ctx.user_id)
        if not result.ok:
            return result
        change = result.value
        return Ok(CommandResponse(response_type="in_channel", blocks=[
            section("🔄 Incident commander role transferred"),
            section(
                f"*From:* <@{change.previous_commander}>\n"
                f"*To:* <@{change.investigation.incident.incident_commander}>\n"
                f"*By:* <@{ctx.user_id}>"
            ),
            context(f"Incident: *{change.investigation.name}*"),
        ]))

    def resolve(self, request: ResolveRequest) -> Result:
        ctx = request.context
        result = self._engine.resolve(ctx.channel_id, ctx.user_id)
        if not result.ok:
            return result
        inv = result.value
        incident = inv.incident
        duration = format_duration(incident.escalated_at, incident.resolved_at, incident.resolved_at)
        blocks = [
            section(f"✅ Incident *{inv.name}* has been resolved!"),
            section(
                f"*Incident Duration:* {duration}\n*Resolved by:* <@{incident.resolved_by}>\n"
                f"*Incident Commander:* <@{incident.incident_commander}>"
            ),
            context(
                "The investigation remains open for follow-up analysis and post-mortem. "
                "Use `/case close` when all follow-up work is complete."
            ),
        ]
        if self._pager.enabled and not self._pager.resolve_incident(inv.id):
            blocks.append(context(PAGING_FAILED_NOTE))
        return Ok(CommandResponse(response_type="in_channel", blocks=blocks))

    def close(self, request: CloseRequest) -> Result:
        ctx = request.context
        result = self._engine.close(ctx.channel_id, ctx.user_id)
        if not result.ok:
            return result
        inv = result.value
        text = f"✅ Investigation *{inv.name}* has been closed and the channel will be archived."
        try:
            self._slack.archive_channel(inv.channel_id)
        except CollaboratorFailure as exc:
            logger.warning("Archive failed for %s after close: %s", inv.channel_id, exc)
            text = f"✅ Investigation *{inv.name}* has been closed. {ARCHIVE_FAILED_NOTE}"
        self._announce([
            section(f"🔒 Investigation closed: *{inv.name}*"),
            section(
                f"*Title:* {inv.title}\n"
                f"*Duration:* {format_duration(inv.created_at, inv.closed_at, self._clock())}\n"
                f"*Events collected:* {inv.event_count}\n*Closed by:* <@{inv.closed_by}>"
            ),
        ], f"Investigation closed: {inv.name}")
        return Ok(CommandResponse.ephemeral(text))

    # ── Read-only verbs ───────────────────────────────────────────────

    def status(self, request: StatusRequest) -> Result:
        result = self._engine.current(request.context.channel_id)
        if not result.ok:
            return result
        inv = result.value
        if inv.incident is None:
            incident_text = "None"
        elif inv.incident.is_active:
            incident_text = f"🚨 Escalated (commander <@{inv.incident.incident_commander}>)"
        else:
            incident_text = "✅ Resolved"
        return Ok(CommandResponse(blocks=[
            section(f"*Current Investigation: {inv.name}*"),
            fields_section(
                f"*Title:*\n{inv.title}",
                f"*Status:*\n{status_label(inv)}",
                f"*Events:*\n{inv.event_count}",
                f"*Duration:*\n{format_duration(inv.created_at, inv.closed_at, self._clock())}",
                f"*Created by:*\n<@{inv.created_by}>",
                f"*Incident:*\n{incident_text}",
            ),
        ]))

    def list_investigations(self, request: ListRequest) -> Result:
        investigations = self._repo.list_active(self._list_limit)
        if not investigations:
            return Ok(CommandResponse.ephemeral(NO_ACTIVE_INVESTIGATIONS))
        now = self._clock()
        count = len(investigations)
        return Ok(CommandResponse(blocks=[
            header("Active Investigations"),
            section(f"Found *{count} active investigation{'s' if count != 1 else ''}*:"),
            DIVIDER,
            section("\n\n".join(list_entry(i, inv, now) for i, inv in enumerate(investigations, 1))),
        ]))

    def stats(self, request: StatsRequest) -> Result:
        stats = self._repo.get_stats(top=3)
        rate = (
            f"{stats.escalated_count / stats.total_investigations * 100:.1f}"
            if stats.total_investigations else "0.0"
        )
        return Ok(CommandResponse(blocks=[
            header("📊 Case Statistics"),
            DIVIDER,
            fields_section(
                f"*Total Investigations:*\n{stats.total_investigations} ({stats.active_investigations} active)",
                f"*Escalation Rate:*\n{stats.escalated_count} incidents ({rate}%)",
                f"*Avg Resolution Time:*\n{format_minutes(stats.avg_resolution_minutes)}",
                f"*Events Collected:*\n{stats.total_events} total",
            ),
            DIVIDER,
            section("*🏆 Top Investigators:*"),
            section(leaderboard(stats.top_investigators, "investigations", "_No investigations yet_")),
            section("*🚨 Top Incident Commanders:*"),
            section(leaderboard(stats.top_commanders, "incidents", "_No incidents yet_")),
            context("_All-time statistics._"),
        ]))

    def export(self, request: ExportRequest) -> Result:
        user = request.context.user_id
        if self._export_authorized and user not in self._export_authorized:
            logger.warning("Export refused for unauthorized user",
                           extra={"context": {"user_id": user, "team_id": request.context.team_id}})
            return Ok(CommandResponse.ephemeral(NOT_AUTHORIZED_TO_EXPORT))
        investigations = self._repo.list_all()
        if not investigations:
            return Ok(CommandResponse.ephemeral(NOTHING_TO_EXPORT))
        now = self._clock()
        filename = f"case-export-{now.strftime('%Y-%m-%dT%H-%M-%S')}.csv"
        content = build_export_csv(investigations, now).encode("utf-8")
        dm_channel = self._slack.open_dm(user)
        self._slack.upload_file(
            dm_channel, filename, content,
            initial_comment=f"📊 Case Export - {len(investigations)} investigations",
        )
        logger.info("Export delivered user=%s rows=%d", user, len(investigations))
        return Ok(CommandResponse(blocks=[
            section("✅ Export complete! I've sent you the CSV file as a direct message."),
            section(
                f"*Export Summary:*\n• Total investigations: {len(investigations)}\n"
                f"• File: {filename}\n• Check your DMs for the download link"
            ),
        ]))

    def help(self, request: HelpRequest) -> Result:
        return Ok(help_response())

    # ── Private ───────────────────────────────────────────────────────

    def _announce(self, blocks: List[dict], fallback: str) -> None:
        if not self._announce_channel:
            return
        try:
            self._slack.post_message(self._announce_channel, fallback, blocks)
        except CollaboratorFailure as exc:
            logger.warning("Announcement to %s failed: %s", self._announce_channel, exc)


def help_response() -> CommandResponse:
    return CommandResponse(blocks=[
        header("🔍 Case - Incident Investigation Platform"),
        section("*Your Investigation Toolkit:*"),
        section(HELP_COMMANDS),
        DIVIDER,
        section(HELP_EVIDENCE),
    ])
