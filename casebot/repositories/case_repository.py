# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Data-access layer for investigations, incidents, and evidence events.

Every mutating statement is a single transaction. Row-level writes carry the
version the caller read; a mismatch (or a unique-constraint loss) surfaces as
ConflictError so the caller can re-read and re-check its guard.
"""
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.types import DateTime

from casebot.core.errors import CollaboratorFailure, ConflictError
from casebot.core.logging import get_logger
from casebot.models.domain import (
    ESCALATED, INVESTIGATING, CaseStats, Event, Incident, Investigation,
)

logger = get_logger(__name__)

_TS = DateTime(timezone=True)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS investigations (
        id          VARCHAR(36)  PRIMARY KEY,
        name        VARCHAR(64)  NOT NULL UNIQUE,
        title       TEXT         NOT NULL,
        status      VARCHAR(16)  NOT NULL DEFAULT 'investigating',
        channel_id  VARCHAR(32)  NOT NULL,
        created_by  VARCHAR(32)  NOT NULL,
        created_at  TIMESTAMP WITH TIME ZONE NOT NULL,
        closed_by   VARCHAR(32),
        closed_at   TIMESTAMP WITH TIME ZONE,
        version     INTEGER      NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_investigations_open_channel
        ON investigations (channel_id) WHERE status <> 'closed'
    """,
    """
    CREATE TABLE IF NOT EXISTS incidents (
        id                  VARCHAR(36) PRIMARY KEY,
        investigation_id    VARCHAR(36) NOT NULL UNIQUE REFERENCES investigations (id),
        incident_commander  VARCHAR(32) NOT NULL,
        escalated_at        TIMESTAMP WITH TIME ZONE NOT NULL,
        resolved_at         TIMESTAMP WITH TIME ZONE,
        resolved_by         VARCHAR(32),
        version             INTEGER     NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id                 VARCHAR(36) PRIMARY KEY,
        investigation_id   VARCHAR(36) NOT NULL REFERENCES investigations (id),
        slack_message_url  TEXT        NOT NULL,
        added_by           VARCHAR(32) NOT NULL,
        added_at           TIMESTAMP WITH TIME ZONE NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_events_investigation ON events (investigation_id)",
)

CASE_SELECT = """
    SELECT i.id, i.name, i.title, i.status, i.channel_id, i.created_by, i.created_at,
           i.closed_by, i.closed_at, i.version,
           n.id, n.incident_commander, n.escalated_at, n.resolved_at, n.resolved_by, n.version,
           (SELECT COUNT(*) FROM events e WHERE e.investigation_id = i.id)
    FROM investigations i
    LEFT JOIN incidents n ON n.investigation_id = i.id
"""

INVESTIGATION_UPDATABLE = ("status", "closed_at", "closed_by")
INCIDENT_UPDATABLE = ("incident_commander", "resolved_at", "resolved_by")
TIMESTAMP_FIELDS = ("created_at", "closed_at", "escalated_at", "resolved_at", "added_at")


def _as_utc(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _sql(statement: str, params: Dict[str, Any]):
    """Build a text() statement, typing any timestamp parameters it binds."""
    stmt = text(statement)
    typed = [bindparam(name, type_=_TS) for name in TIMESTAMP_FIELDS if name in params]
    return stmt.bindparams(*typed) if typed else stmt


def _row_to_investigation(row) -> Investigation:
    incident = None
    if row[10] is not None:
        incident = Incident(
            id=str(row[10]), investigation_id=str(row[0]), incident_commander=row[11],
            escalated_at=_as_utc(row[12]), resolved_at=_as_utc(row[13]),
            resolved_by=row[14], version=row[15],
        )
    return Investigation(
        id=str(row[0]), name=row[1], title=row[2], status=row[3], channel_id=row[4],
        created_by=row[5], created_at=_as_utc(row[6]), closed_by=row[7],
        closed_at=_as_utc(row[8]), version=row[9], incident=incident,
        event_count=row[16] or 0,
    )


class CaseRepository:
    def __init__(self, engine: Engine):
        self._engine = engine

    def create_schema(self) -> None:
        with self._transaction() as conn:
            for ddl in SCHEMA:
                conn.execute(text(ddl))
        logger.info("Database schema ensured")

    # ── Read ───────────────────────────────────────────────────────────

    def find_investigation_by_origin(self, origin: str) -> Optional[Investigation]:
        """The open investigation for a channel, else its most recent closed one."""
        with self._connection() as conn:
            row = conn.execute(
                text(CASE_SELECT + """
                    WHERE i.channel_id = :origin
                    ORDER BY CASE WHEN i.status <> 'closed' THEN 0 ELSE 1 END, i.created_at DESC
                    LIMIT 1
                """),
                {"origin": origin},
            ).fetchone()
        return _row_to_investigation(row) if row else None

    def find_investigation_by_name(self, name: str) -> Optional[Investigation]:
        with self._connection() as conn:
            row = conn.execute(
                text(CASE_SELECT + " WHERE i.name = :name"), {"name": name}
            ).fetchone()
        return _row_to_investigation(row) if row else None

    def find_investigation_by_id(self, investigation_id: str) -> Optional[Investigation]:
        with self._connection() as conn:
            row = conn.execute(
                text(CASE_SELECT + " WHERE i.id = :id"), {"id": investigation_id}
            ).fetchone()
        return _row_to_investigation(row) if row else None

    def count_events(self, investigation_id: str) -> int:
        with self._connection() as conn:
            return conn.execute(
                text("SELECT COUNT(*) FROM events WHERE investigation_id = :iid"),
                {"iid": investigation_id},
            ).scalar() or 0

    def list_active(self, limit: int = 25) -> List[Investigation]:
        with self._connection() as conn:
            rows = conn.execute(
                text(CASE_SELECT + """
                    WHERE i.status <> 'closed'
                    ORDER BY i.created_at DESC
                    LIMIT :limit
                """),
                {"limit": limit},
            ).fetchall()
        return [_row_to_investigation(r) for r in rows]

    def list_all(self) -> List[Investigation]:
        with self._connection() as conn:
            rows = conn.execute(text(CASE_SELECT + " ORDER BY i.created_at DESC")).fetchall()
        return [_row_to_investigation(r) for r in rows]

    def get_stats(self, top: int = 3) -> CaseStats:
        with self._connection() as conn:
            total = conn.execute(text("SELECT COUNT(*) FROM investigations")).scalar() or 0
            active = conn.execute(
                text("SELECT COUNT(*) FROM investigations WHERE status <> 'closed'")
            ).scalar() or 0
            escalated = conn.execute(text("SELECT COUNT(*) FROM incidents")).scalar() or 0
            events = conn.execute(text("SELECT COUNT(*) FROM events")).scalar() or 0
            resolved = conn.execute(
                text("SELECT escalated_at, resolved_at FROM incidents WHERE resolved_at IS NOT NULL")
            ).fetchall()
            investigators = conn.execute(
                text("""
                    SELECT created_by, COUNT(*) AS n FROM investigations
                    GROUP BY created_by ORDER BY n DESC, created_by LIMIT :top
                """),
                {"top": top},
            ).fetchall()
            commanders = conn.execute(
                text("""
                    SELECT incident_commander, COUNT(*) AS n FROM incidents
                    GROUP BY incident_commander ORDER BY n DESC, incident_commander LIMIT :top
                """),
                {"top": top},
            ).fetchall()

        avg_minutes = 0
        if resolved:
            total_minutes = sum(
                (_as_utc(r[1]) - _as_utc(r[0])).total_seconds() / 60 for r in resolved
            )
            avg_minutes = round(total_minutes / len(resolved))
        return CaseStats(
            total_investigations=total, active_investigations=active,
            escalated_count=escalated, resolved_count=len(resolved),
            avg_resolution_minutes=avg_minutes, total_events=events,
            top_investigators=[(r[0], r[1]) for r in investigators],
            top_commanders=[(r[0], r[1]) for r in commanders],
        )

    # ── Write ──────────────────────────────────────────────────────────

    def create_investigation(self, fields: Dict[str, Any]) -> Investigation:
        params = {
            "id": fields.get("id") or str(uuid.uuid4()),
            "name": fields["name"],
            "title": fields["title"],
            "status": INVESTIGATING,
            "channel_id": fields["channel_id"],
            "created_by": fields["created_by"],
            "created_at": fields.get("created_at") or datetime.now(timezone.utc),
        }
        with self._transaction() as conn:
            conn.execute(
                _sql("""
                    INSERT INTO investigations
                        (id, name, title, status, channel_id, created_by, created_at, version)
                    VALUES
                        (:id, :name, :title, :status, :channel_id, :created_by, :created_at, 1)
                """, params),
                params,
            )
            row = conn.execute(text(CASE_SELECT + " WHERE i.id = :id"), {"id": params["id"]}).fetchone()
        return _row_to_investigation(row)

    def update_investigation_status(self, investigation_id: str, fields: Dict[str, Any],
                                    expected_version: int) -> Investigation:
        updates = [f"{name} = :{name}" for name in INVESTIGATION_UPDATABLE if name in fields]
        params = {name: fields[name] for name in INVESTIGATION_UPDATABLE if name in fields}
        params.update({"id": investigation_id, "expected_version": expected_version})
        with self._transaction() as conn:
            result = conn.execute(
                _sql(f"""
                    UPDATE investigations SET {', '.join(updates + ['version = version + 1'])}
                    WHERE id = :id AND version = :expected_version
                """, params),
                params,
            )
            if result.rowcount == 0:
                raise ConflictError(f"investigation {investigation_id} changed concurrently")
            row = conn.execute(text(CASE_SELECT + " WHERE i.id = :id"), {"id": investigation_id}).fetchone()
        return _row_to_investigation(row)

    def create_incident(self, fields: Dict[str, Any], investigation_version: int) -> Investigation:
        """Insert the incident and flip its investigation to escalated, atomically."""
        params = {
            "id": fields.get("id") or str(uuid.uuid4()),
            "investigation_id": fields["investigation_id"],
            "incident_commander": fields["incident_commander"],
            "escalated_at": fields.get("escalated_at") or datetime.now(timezone.utc),
        }
        with self._transaction() as conn:
            result = conn.execute(
                text("""
                    UPDATE investigations SET status = :escalated, version = version + 1
                    WHERE id = :iid AND version = :expected_version AND status = :investigating
                """),
                {"escalated": ESCALATED, "investigating": INVESTIGATING,
                 "iid": params["investigation_id"], "expected_version": investigation_version},
            )
            if result.rowcount == 0:
                raise ConflictError(f"investigation {params['investigation_id']} changed concurrently")
            conn.execute(
                _sql("""
                    INSERT INTO incidents
                        (id, investigation_id, incident_commander, escalated_at, version)
                    VALUES (:id, :investigation_id, :incident_commander, :escalated_at, 1)
                """, params),
                params,
            )
            row = conn.execute(
                text(CASE_SELECT + " WHERE i.id = :id"), {"id": params["investigation_id"]}
            ).fetchone()
        return _row_to_investigation(row)

    def update_incident(self, incident_id: str, fields: Dict[str, Any],
                        expected_version: int) -> Investigation:
        updates = [f"{name} = :{name}" for name in INCIDENT_UPDATABLE if name in fields]
        params = {name: fields[name] for name in INCIDENT_UPDATABLE if name in fields}
        params.update({"id": incident_id, "expected_version": expected_version})
        with self._transaction() as conn:
            result = conn.execute(
                _sql(f"""
                    UPDATE incidents SET {', '.join(updates + ['version = version + 1'])}
                    WHERE id = :id AND version = :expected_version
                """, params),
                params,
            )
            if result.rowcount == 0:
                raise ConflictError(f"incident {incident_id} changed concurrently")
            row = conn.execute(
                text(CASE_SELECT + " WHERE n.id = :id"), {"id": incident_id}
            ).fetchone()
        return _row_to_investigation(row)

    def create_event(self, fields: Dict[str, Any]) -> Event:
        params = {
            "id": fields.get("id") or str(uuid.uuid4()),
            "investigation_id": fields["investigation_id"],
            "slack_message_url": fields["slack_message_url"],
            "added_by": fields["added_by"],
            "added_at": fields.get("added_at") or datetime.now(timezone.utc),
        }
        with self._transaction() as conn:
            conn.execute(
                _sql("""
                    INSERT INTO events (id, investigation_id, slack_message_url, added_by, added_at)
                    VALUES (:id, :investigation_id, :slack_message_url, :added_by, :added_at)
                """, params),
                params,
            )
        return Event(**params)

    # ── Ops ────────────────────────────────────────────────────────────

    def verify_connection(self) -> None:
        with self._connection() as conn:
            conn.execute(text("SELECT 1"))

    def dispose(self):
        self._engine.dispose()

    # ── Private ────────────────────────────────────────────────────────

    @contextmanager
    def _transaction(self) -> Iterator[Any]:
        try:
            with self._engine.begin() as conn:
                yield conn
        except ConflictError:
            raise
        except IntegrityError as exc:
            raise ConflictError(f"constraint violated: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise CollaboratorFailure(f"database error: {exc}") from exc

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        try:
            with self._engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise CollaboratorFailure(f"database error: {exc}") from exc
