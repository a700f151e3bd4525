# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Presentation helpers: elapsed-time text and rich-text block builders."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from casebot.models.domain import ESCALATED, Investigation


def elapsed_minutes(start: datetime, end: Optional[datetime] = None,
                    now: Optional[datetime] = None) -> int:
    """Whole minutes from ``start`` to ``min(now, end or now)``, never negative."""
    now = now or datetime.now(timezone.utc)
    stop = min(now, end) if end is not None else now
    return max(0, int((stop - start).total_seconds() // 60))


def format_minutes(minutes: int) -> str:
    days, rem = divmod(minutes, 24 * 60)
    hours, mins = divmod(rem, 60)
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def format_duration(start: datetime, end: Optional[datetime] = None,
                    now: Optional[datetime] = None) -> str:
    """The one duration rule every handler reports with: ``Xd Yh``, ``Xh Ym`` or ``Ym``."""
    return format_minutes(elapsed_minutes(start, end, now))


def mrkdwn(text: str) -> Dict[str, Any]:
    return {"type": "mrkdwn", "text": text}


def section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": mrkdwn(text)}


def fields_section(*fields: str) -> Dict[str, Any]:
    return {"type": "section", "fields": [mrkdwn(f) for f in fields]}


def context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [mrkdwn(text)]}


def header(text: str) -> Dict[str, Any]:
    return {"type": "header", "text": {"type": "plain_text", "text": text, "emoji": True}}


DIVIDER = {"type": "divider"}


def status_label(investigation: Investigation) -> str:
    if investigation.status == ESCALATED:
        return "🚨 Escalated"
    return "🔍 Investigating" if not investigation.is_closed else "🔒 Closed"


def list_entry(index: int, investigation: Investigation, now: Optional[datetime] = None) -> str:
    return (
        f"{index}. *{investigation.name}*\n"
        f"   • Title: {investigation.title}\n"
        f"   • Channel: <#{investigation.channel_id}>\n"
        f"   • Events: {investigation.event_count}\n"
        f"   • Duration: {format_duration(investigation.created_at, investigation.closed_at, now)}\n"
        f"   • Created by: <@{investigation.created_by}>"
    )


def leaderboard(rows: List[tuple], noun: str, empty: str) -> str:
    if not rows:
        return empty
    return "\n".join(f"{i}. <@{who}> - {count} {noun}" for i, (who, count) in enumerate(rows, 1))
