# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Shared fixtures. The environment is pinned before any casebot module is imported."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SLACK_SIGNING_SECRET"] = ""
os.environ["SLACK_BOT_TOKEN"] = "xoxb-test"
os.environ["PAGERDUTY_ROUTING_KEY"] = ""
os.environ["POTENTIAL_ISSUES_CHANNEL_ID"] = ""
os.environ["ALLOWED_WORKSPACE_IDS"] = ""
os.environ["EXPORT_AUTHORIZED_USERS"] = ""

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from casebot.core.database import build_engine  # noqa: E402
from casebot.repositories.case_repository import CaseRepository  # noqa: E402

ALICE = "UALICE0001"
BOB = "UBOB000002"
CAROL = "UCAROL0003"
TEAM = "T0000TEAM1"
CHANNEL = "CINCIDENT01"
OTHER_CHANNEL = "COTHER00002"


class FakeClock:
    """Settable UTC clock for lifecycle and handler tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class TickClock:
    """Settable monotonic clock for the rate governor."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    yield eng
    eng.dispose()


@pytest.fixture
def repo(engine):
    r = CaseRepository(engine)
    r.create_schema()
    return r


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tick():
    return TickClock()
