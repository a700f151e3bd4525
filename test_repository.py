# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Case repository against in-memory SQLite."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from casebot.core.database import build_engine, is_memory_sqlite
from casebot.core.errors import CollaboratorFailure, ConflictError
from casebot.models.domain import CLOSED, ESCALATED, INVESTIGATING
from casebot.repositories.case_repository import CaseRepository
from conftest import ALICE, BOB, CHANNEL, OTHER_CHANNEL

T0 = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def _create(repo, name="case-api-abc", channel=CHANNEL, created_at=T0, by=ALICE):
    return repo.create_investigation({
        "name": name, "title": "API issues", "channel_id": channel,
        "created_by": by, "created_at": created_at,
    })


# ═══════════════════════════════════════════════════════════════════════════
# INVESTIGATIONS
# ═══════════════════════════════════════════════════════════════════════════
class TestInvestigations:
    def test_create_and_read_back(self, repo):
        inv = _create(repo)
        assert inv.status == INVESTIGATING
        assert inv.version == 1
        assert inv.event_count == 0
        assert inv.incident is None
        assert inv.created_at == T0
        assert repo.find_investigation_by_name("case-api-abc").id == inv.id
        assert repo.find_investigation_by_id(inv.id).channel_id == CHANNEL

    def test_missing_lookups_return_none(self, repo):
        assert repo.find_investigation_by_origin(CHANNEL) is None
        assert repo.find_investigation_by_name("nope") is None
        assert repo.find_investigation_by_id("nope") is None

    def test_duplicate_name_conflicts(self, repo):
        _create(repo)
        with pytest.raises(ConflictError):
            _create(repo, channel=OTHER_CHANNEL)

    def test_second_open_investigation_in_channel_conflicts(self, repo):
        _create(repo)
        with pytest.raises(ConflictError):
            _create(repo, name="case-api-def")

    def test_closed_investigation_frees_channel(self, repo):
        inv = _create(repo)
        repo.update_investigation_status(
            inv.id, {"status": CLOSED, "closed_at": T0, "closed_by": ALICE}, expected_version=1,
        )
        newer = _create(repo, name="case-api-def", created_at=T0 + timedelta(hours=1))
        assert repo.find_investigation_by_origin(CHANNEL).id == newer.id

    def test_origin_lookup_falls_back_to_latest_closed(self, repo):
        inv = _create(repo)
        repo.update_investigation_status(
            inv.id, {"status": CLOSED, "closed_at": T0, "closed_by": ALICE}, expected_version=1,
        )
        found = repo.find_investigation_by_origin(CHANNEL)
        assert found.status == CLOSED
        assert found.closed_by == ALICE
        assert found.version == 2

    def test_stale_version_conflicts(self, repo):
        inv = _create(repo)
        repo.update_investigation_status(inv.id, {"status": CLOSED, "closed_at": T0, "closed_by": ALICE}, 1)
        with pytest.raises(ConflictError):
            repo.update_investigation_status(inv.id, {"status": CLOSED, "closed_at": T0, "closed_by": BOB}, 1)


# ═══════════════════════════════════════════════════════════════════════════
# INCIDENTS + EVENTS
# ═══════════════════════════════════════════════════════════════════════════
class TestIncidents:
    def test_create_incident_escalates_atomically(self, repo):
        inv = _create(repo)
        escalated = repo.create_incident(
            {"investigation_id": inv.id, "incident_commander": ALICE, "escalated_at": T0},
            investigation_version=inv.version,
        )
        assert escalated.status == ESCALATED
        assert escalated.version == 2
        assert escalated.incident.incident_commander == ALICE
        assert escalated.incident.is_active

    def test_second_incident_with_stale_version_conflicts(self, repo):
        inv = _create(repo)
        fields = {"investigation_id": inv.id, "incident_commander": ALICE, "escalated_at": T0}
        repo.create_incident(fields, investigation_version=1)
        with pytest.raises(ConflictError):
            repo.create_incident(fields, investigation_version=1)
        assert repo.get_stats().escalated_count == 1

    def test_update_incident(self, repo):
        inv = _create(repo)
        esc = repo.create_incident(
            {"investigation_id": inv.id, "incident_commander": ALICE, "escalated_at": T0}, 1,
        )
        resolved = repo.update_incident(
            esc.incident.id, {"resolved_at": T0 + timedelta(minutes=30), "resolved_by": BOB},
            expected_version=1,
        )
        assert resolved.incident.resolved_by == BOB
        assert resolved.incident.resolved_at == T0 + timedelta(minutes=30)
        with pytest.raises(ConflictError):
            repo.update_incident(esc.incident.id, {"incident_commander": BOB}, expected_version=1)


class TestEvents:
    def test_events_counted(self, repo):
        inv = _create(repo)
        for i in range(3):
            repo.create_event({
                "investigation_id": inv.id, "slack_message_url": f"https://x/p{i}",
                "added_by": BOB, "added_at": T0,
            })
        assert repo.count_events(inv.id) == 3
        assert repo.find_investigation_by_id(inv.id).event_count == 3


# ═══════════════════════════════════════════════════════════════════════════
# READ-ONLY AGGREGATES
# ═══════════════════════════════════════════════════════════════════════════
class TestAggregates:
    def test_list_active_newest_first_with_limit(self, repo):
        for i in range(4):
            _create(repo, name=f"case-n-{i}", channel=f"C0000000{i}", created_at=T0 + timedelta(minutes=i))
        names = [inv.name for inv in repo.list_active(limit=3)]
        assert names == ["case-n-3", "case-n-2", "case-n-1"]

    def test_list_active_excludes_closed(self, repo):
        inv = _create(repo)
        repo.update_investigation_status(inv.id, {"status": CLOSED, "closed_at": T0, "closed_by": ALICE}, 1)
        assert repo.list_active() == []
        assert len(repo.list_all()) == 1

    def test_stats(self, repo):
        a = _create(repo, name="case-a", channel="C00000001", by=ALICE)
        _create(repo, name="case-b", channel="C00000002", by=ALICE)
        _create(repo, name="case-c", channel="C00000003", by=BOB)
        esc = repo.create_incident({"investigation_id": a.id, "incident_commander": BOB, "escalated_at": T0}, 1)
        repo.update_incident(esc.incident.id, {"resolved_at": T0 + timedelta(minutes=90), "resolved_by": BOB}, 1)
        stats = repo.get_stats()
        assert stats.total_investigations == 3
        assert stats.active_investigations == 3
        assert stats.escalated_count == 1
        assert stats.resolved_count == 1
        assert stats.avg_resolution_minutes == 90
        assert stats.top_investigators[0] == (ALICE, 2)
        assert stats.top_commanders == [(BOB, 1)]


class TestFailures:
    def test_database_error_becomes_collaborator_failure(self):
        broken = MagicMock()
        broken.connect.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
        repo = CaseRepository(broken)
        with pytest.raises(CollaboratorFailure):
            repo.verify_connection()
        with pytest.raises(CollaboratorFailure):
            repo.find_investigation_by_origin(CHANNEL)


# ═══════════════════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════════════════
class TestEngine:
    @pytest.mark.parametrize("url,expected", [
        ("sqlite://", True),
        ("sqlite:///:memory:", True),
        ("sqlite:///file:shared?mode=memory&uri=true", True),
        ("sqlite:///./casebot.db", False),
        ("postgresql://u:p@db:5432/casebot", False),
    ])
    def test_memory_url_detection(self, url, expected):
        assert is_memory_sqlite(url) is expected

    def test_memory_database_shares_one_connection(self):
        eng = build_engine("sqlite://")
        try:
            assert isinstance(eng.pool, StaticPool)
        finally:
            eng.dispose()

    def test_file_database_checks_out_separate_connections(self, tmp_path):
        eng = build_engine(f"sqlite:///{tmp_path / 'casebot.db'}")
        try:
            assert not isinstance(eng.pool, StaticPool)
            with eng.connect() as first, eng.connect() as second:
                assert first.connection.dbapi_connection is not second.connection.dbapi_connection
        finally:
            eng.dispose()
