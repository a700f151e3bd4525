# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain models — pure data structures, NO FastAPI dependency.

Investigation lifecycle:
    investigating ─► escalated ─► closed
    investigating ─► closed          (no incident ever raised)

Incident sub-state (exists only once escalated):
    active ─► resolved
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

INVESTIGATING = "investigating"
ESCALATED = "escalated"
CLOSED = "closed"

VALID_STATUSES = (INVESTIGATING, ESCALATED, CLOSED)

ALLOWED_TRANSITIONS = {
    INVESTIGATING: {ESCALATED, CLOSED},
    ESCALATED:     {CLOSED},
    CLOSED:        set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class Incident(BaseModel):
    """1:1 companion of an escalated investigation."""
    id: str
    investigation_id: str
    incident_commander: str
    escalated_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    version: int = 1

    @property
    def is_active(self) -> bool:
        return self.resolved_at is None


class Investigation(BaseModel):
    id: str
    name: str
    title: str
    status: str = INVESTIGATING
    channel_id: str
    created_by: str
    created_at: datetime
    closed_by: Optional[str] = None
    closed_at: Optional[datetime] = None
    version: int = 1
    incident: Optional[Incident] = None
    event_count: int = 0

    @field_validator("status")
    @classmethod
    def known_status(cls, v: str) -> str:
        if v not in VALID_STATUSES:
            raise ValueError(f"status must be one of {VALID_STATUSES}")
        return v

    @property
    def is_closed(self) -> bool:
        return self.status == CLOSED


class Event(BaseModel):
    """Append-only evidence record."""
    id: str
    investigation_id: str
    slack_message_url: str
    added_by: str
    added_at: datetime


class CaseStats(BaseModel):
    total_investigations: int = 0
    active_investigations: int = 0
    escalated_count: int = 0
    resolved_count: int = 0
    avg_resolution_minutes: int = 0
    total_events: int = 0
    top_investigators: list[tuple[str, int]] = []
    top_commanders: list[tuple[str, int]] = []
