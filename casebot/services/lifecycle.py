# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Lifecycle engine — the investigation / incident state machine.

Every transition is read → guard → write against a single investigation row
(and its 1:1 incident). The repository rejects a write whose row version no
longer matches the read; on such a conflict the whole read-guard-write runs
once more against fresh state, and a second conflict becomes a generic
failure. The engine never raises for expected outcomes: it returns Ok / Err.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from casebot.core.errors import (
    CollaboratorFailure, ConflictError, Err, ErrorKind, Ok, Result, ValidationError,
    precondition,
)
from casebot.core.logging import get_logger
from casebot.metrics import (
    EVENTS_ADDED, INCIDENT_RESOLUTION, TRANSITION_CONFLICTS, TRANSITIONS_TOTAL,
)
from casebot.models.domain import CLOSED, ESCALATED, Event, Investigation, can_transition
from casebot.repositories.case_repository import CaseRepository
from casebot.services.naming import generate_unique_name
from casebot.services.validation import parse_mention, validate_title

logger = get_logger(__name__)

NOT_IN_INVESTIGATION = "This command only works in investigation channels."
NO_INVESTIGATION = (
    "This channel is not associated with an investigation. "
    "Create one with `/case create [title]`"
)
ALREADY_OPEN = "This channel already has an open investigation: *{name}*. Close it before opening another."
ALREADY_ESCALATED = "This investigation has already been escalated to an incident"
INVESTIGATION_CLOSED = "This investigation is closed and cannot be escalated."
NOT_ESCALATED_YET = (
    "This investigation has not been escalated to an incident yet. Use `/case incident` first."
)
NOT_ESCALATED = (
    "This investigation has not been escalated to an incident. Only incidents can be resolved."
)
ALREADY_RESOLVED = "This incident has already been resolved."
ALREADY_COMMANDER = "<@{user}> is already the incident commander."
ALREADY_CLOSED = "This investigation is already closed."
UNRESOLVED_INCIDENT = (
    "This incident must be resolved before the investigation can be closed. "
    "Use `/case resolve` first."
)
INVESTIGATION_NOT_FOUND = "Investigation not found."
CLOSED_FOR_EVIDENCE = "This investigation is closed and no longer accepts evidence."


@dataclass(frozen=True)
class CommanderTransfer:
    investigation: Investigation
    previous_commander: str


@dataclass(frozen=True)
class EvidenceAdded:
    investigation: Investigation
    event: Event
    event_count: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleEngine:
    def __init__(self, repo: CaseRepository,
                 clock: Callable[[], datetime] = _utcnow,
                 max_name_attempts: int = 10) -> None:
        self._repo = repo
        self._clock = clock
        self._max_name_attempts = max_name_attempts

    # ── Transitions ───────────────────────────────────────────────────

    def create(self, origin: str, title: str, actor: str) -> Result:
        try:
            clean_title = validate_title(title)
        except ValidationError as exc:
            return Err(ErrorKind.VALIDATION, str(exc))

        def attempt() -> Result:
            existing = self._repo.find_investigation_by_origin(origin)
            if existing is not None and not existing.is_closed:
                return precondition(ALREADY_OPEN.format(name=existing.name))
            name = generate_unique_name(
                clean_title,
                lambda n: self._repo.find_investigation_by_name(n) is not None,
                max_attempts=self._max_name_attempts,
            )
            return Ok(self._repo.create_investigation({
                "name": name, "title": clean_title, "channel_id": origin,
                "created_by": actor, "created_at": self._clock(),
            }))

        return self._run("create", origin, attempt)

    def escalate(self, origin: str, actor: str) -> Result:
        def attempt() -> Result:
            investigation = self._repo.find_investigation_by_origin(origin)
            if investigation is None:
                return precondition(NO_INVESTIGATION)
            if investigation.incident is not None:
                return precondition(ALREADY_ESCALATED)
            if not can_transition(investigation.status, ESCALATED):
                return precondition(INVESTIGATION_CLOSED if investigation.is_closed else ALREADY_ESCALATED)
            return Ok(self._repo.create_incident(
                {"investigation_id": investigation.id, "incident_commander": actor,
                 "escalated_at": self._clock()},
                investigation_version=investigation.version,
            ))

        return self._run("escalate", origin, attempt)

    def transfer(self, origin: str, target: str, actor: str) -> Result:
        def attempt() -> Result:
            investigation = self._repo.find_investigation_by_origin(origin)
            if investigation is None:
                return precondition(NOT_IN_INVESTIGATION)
            incident = investigation.incident
            if incident is None:
                return precondition(NOT_ESCALATED_YET)
            if not incident.is_active:
                return precondition(ALREADY_RESOLVED)
            try:
                new_commander = parse_mention(target)
            except ValidationError as exc:
                return Err(ErrorKind.VALIDATION, str(exc))
            if new_commander == incident.incident_commander:
                return precondition(ALREADY_COMMANDER.format(user=new_commander))
            updated = self._repo.update_incident(
                incident.id, {"incident_commander": new_commander},
                expected_version=incident.version,
            )
            return Ok(CommanderTransfer(updated, incident.incident_commander))

        return self._run("transfer", origin, attempt)

    def resolve(self, origin: str, actor: str) -> Result:
        def attempt() -> Result:
            investigation = self._repo.find_investigation_by_origin(origin)
            if investigation is None:
                return precondition(NOT_IN_INVESTIGATION)
            incident = investigation.incident
            if incident is None:
                return precondition(NOT_ESCALATED)
            if not incident.is_active:
                return precondition(ALREADY_RESOLVED)
            resolved_at = max(self._clock(), incident.escalated_at)
            updated = self._repo.update_incident(
                incident.id, {"resolved_at": resolved_at, "resolved_by": actor},
                expected_version=incident.version,
            )
            INCIDENT_RESOLUTION.observe((resolved_at - incident.escalated_at).total_seconds())
            return Ok(updated)

        return self._run("resolve", origin, attempt)

    def close(self, origin: str, actor: str) -> Result:
        def attempt() -> Result:
            investigation = self._repo.find_investigation_by_origin(origin)
            if investigation is None:
                return precondition(NOT_IN_INVESTIGATION)
            if not can_transition(investigation.status, CLOSED):
                return precondition(ALREADY_CLOSED)
            if investigation.incident is not None and investigation.incident.is_active:
                return precondition(UNRESOLVED_INCIDENT)
            return Ok(self._repo.update_investigation_status(
                investigation.id,
                {"status": CLOSED, "closed_at": self._clock(), "closed_by": actor},
                expected_version=investigation.version,
            ))

        return self._run("close", origin, attempt)

    def add_event(self, investigation_id: str, message_url: str, actor: str) -> Result:
        def attempt() -> Result:
            investigation = self._repo.find_investigation_by_id(investigation_id)
            if investigation is None:
                return precondition(INVESTIGATION_NOT_FOUND)
            if investigation.is_closed:
                return precondition(CLOSED_FOR_EVIDENCE)
            event = self._repo.create_event({
                "investigation_id": investigation.id, "slack_message_url": message_url,
                "added_by": actor, "added_at": self._clock(),
            })
            EVENTS_ADDED.inc()
            count = self._repo.count_events(investigation.id)
            return Ok(EvidenceAdded(investigation, event, count))

        return self._run("add_event", investigation_id, attempt)

    # ── Reads ─────────────────────────────────────────────────────────

    def current(self, origin: str) -> Result:
        """Fresh snapshot of the channel's investigation, for presentation only."""
        try:
            investigation = self._repo.find_investigation_by_origin(origin)
        except CollaboratorFailure as exc:
            logger.error("Snapshot read failed origin=%s: %s", origin, exc)
            return Err(ErrorKind.COLLABORATOR, str(exc))
        if investigation is None:
            return precondition(
                "No active investigation in this channel. Create one with `/case create [title]`"
            )
        return Ok(investigation)

    # ── Private ───────────────────────────────────────────────────────

    def _run(self, transition: str, subject: str, attempt: Callable[[], Result]) -> Result:
        for attempt_no in (1, 2):
            try:
                result = attempt()
            except ConflictError as exc:
                TRANSITION_CONFLICTS.labels(transition=transition).inc()
                logger.warning("Conflict during %s subject=%s attempt=%d: %s",
                               transition, subject, attempt_no, exc)
                continue
            except CollaboratorFailure as exc:
                logger.error("Persistence failure during %s subject=%s: %s",
                             transition, subject, exc)
                return Err(ErrorKind.COLLABORATOR, str(exc))
            if isinstance(result, Ok):
                TRANSITIONS_TOTAL.labels(transition=transition).inc()
                logger.info("Transition committed: %s subject=%s", transition, subject)
            return result
        return Err(ErrorKind.COLLABORATOR, f"{transition} lost two consecutive write races")
