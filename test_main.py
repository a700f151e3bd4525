# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Tests for the Casebot HTTP surface
==================================
Health, readiness, metrics, request IDs, and the two platform endpoints:
signature check, immediate acknowledgement, background dispatch.

Run:  pytest test_main.py -v
"""
import json
import time
from unittest.mock import MagicMock, patch
from urllib.parse import urlencode

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from casebot.core import dependencies
from casebot.core.config import settings
from casebot.core.errors import CollaboratorFailure
from casebot.middleware import UNMATCHED, resolve_request_id
from casebot.services.signatures import compute_signature
from conftest import ALICE, CHANNEL, TEAM
from main import app

client = TestClient(app, raise_server_exceptions=False)

FORM = {"Content-Type": "application/x-www-form-urlencoded"}


def _command_body(**overrides):
    fields = {
        "command": "/case", "text": "create API issues", "user_id": ALICE,
        "team_id": TEAM, "team_domain": "acme", "channel_id": CHANNEL,
        "response_url": "https://hooks.test/commands/1", "trigger_id": "t1",
        "api_app_id": "A0001",
    }
    fields.update(overrides)
    return urlencode(fields)


def _signed(body, secret, timestamp=None):
    timestamp = timestamp or str(int(time.time()))
    return {
        **FORM,
        "X-Slack-Request-Timestamp": timestamp,
        "X-Slack-Signature": compute_signature(secret, timestamp, body.encode()),
    }


# ══════════════════════════════════════════════════════════════════════════
# HEALTH & OPS ENDPOINTS
# ══════════════════════════════════════════════════════════════════════════
class TestHealthEndpoints:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "casebot"

    def test_readiness_ok(self):
        resp = client.get("/health/ready")
        assert resp.status_code == 200
        data = resp.json()
        assert data["database"] == "connected"
        assert "rate_limit_keys" in data

    @patch.object(dependencies, "_repo")
    def test_readiness_degraded_on_db_error(self, mock_repo):
        mock_repo.verify_connection.side_effect = CollaboratorFailure("DB down")
        resp = client.get("/health/ready")
        assert resp.status_code == 503
        assert resp.json() == {"status": "degraded", "service": "casebot", "database": "unreachable"}

    def test_metrics_endpoint(self):
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "case_commands_total" in resp.text


class TestMiddleware:
    def test_request_id_generated(self):
        resp = client.get("/health")
        assert resp.headers.get("X-Request-ID")

    def test_request_id_propagated(self):
        resp = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    def test_unsafe_request_id_replaced(self):
        resp = client.get("/health", headers={"X-Request-ID": "bad id;drop table"})
        assert resp.headers["X-Request-ID"] != "bad id;drop table"
        assert resolve_request_id("x" * 65) != "x" * 65
        assert resolve_request_id(None)

    def test_unknown_paths_share_one_metric_label(self):
        def count(endpoint):
            labels = {"method": "GET", "endpoint": endpoint, "status": "404"}
            return REGISTRY.get_sample_value("case_http_requests_total", labels) or 0

        before = count(UNMATCHED)
        client.get("/wp-admin/setup.php")
        client.get("/slack/nope")
        assert count(UNMATCHED) == before + 2
        assert count("/wp-admin/setup.php") == 0

    def test_route_paths_keep_their_label(self):
        def count():
            labels = {"method": "GET", "endpoint": "/slack/commands", "status": "405"}
            return REGISTRY.get_sample_value("case_http_requests_total", labels) or 0

        before = count()
        assert client.get("/slack/commands").status_code == 405
        assert count() == before + 1


# ══════════════════════════════════════════════════════════════════════════
# SLASH COMMANDS
# ══════════════════════════════════════════════════════════════════════════
class TestSlashCommandEndpoint:
    @patch.object(dependencies, "_router")
    def test_acknowledges_and_dispatches_in_background(self, mock_router):
        resp = client.post("/slack/commands", content=_command_body(), headers=FORM)
        assert resp.status_code == 200
        assert resp.content == b""
        command = mock_router.handle.call_args.args[0]
        assert command.text == "create API issues"
        assert command.user_id == ALICE
        assert command.team_domain == "acme"

    @patch.object(dependencies, "_router")
    def test_unsigned_request_rejected_when_secret_configured(self, mock_router):
        with patch.object(settings, "SLACK_SIGNING_SECRET", "s3cret"):
            resp = client.post("/slack/commands", content=_command_body(), headers=FORM)
        assert resp.status_code == 401
        mock_router.handle.assert_not_called()

    @patch.object(dependencies, "_router")
    def test_signed_request_accepted(self, mock_router):
        body = _command_body()
        with patch.object(settings, "SLACK_SIGNING_SECRET", "s3cret"):
            resp = client.post("/slack/commands", content=body, headers=_signed(body, "s3cret"))
        assert resp.status_code == 200
        mock_router.handle.assert_called_once()

    @patch.object(dependencies, "_router")
    def test_stale_signature_rejected(self, mock_router):
        body = _command_body()
        stale = str(int(time.time()) - 600)
        with patch.object(settings, "SLACK_SIGNING_SECRET", "s3cret"):
            resp = client.post("/slack/commands", content=body, headers=_signed(body, "s3cret", stale))
        assert resp.status_code == 401

    def test_end_to_end_reply_goes_to_response_url(self):
        slack = MagicMock()
        with patch.object(dependencies._router, "_slack", slack):
            resp = client.post("/slack/commands", content=_command_body(text="help"), headers=FORM)
        assert resp.status_code == 200
        url, payload = slack.respond.call_args.args
        assert url == "https://hooks.test/commands/1"
        assert payload["response_type"] == "ephemeral"
        assert payload["blocks"][0]["type"] == "header"


# ══════════════════════════════════════════════════════════════════════════
# INTERACTIONS
# ══════════════════════════════════════════════════════════════════════════
class TestInteractionEndpoint:
    @patch.object(dependencies, "_evidence")
    def test_acknowledges_and_dispatches_in_background(self, mock_evidence):
        payload = {"type": "message_action", "callback_id": "add_event_to_investigation"}
        resp = client.post("/slack/interactions",
                           content=urlencode({"payload": json.dumps(payload)}), headers=FORM)
        assert resp.status_code == 200
        mock_evidence.handle_interaction.assert_called_once_with(payload)

    @patch.object(dependencies, "_evidence")
    def test_invalid_json_payload(self, mock_evidence):
        resp = client.post("/slack/interactions",
                           content=urlencode({"payload": "{not json"}), headers=FORM)
        assert resp.status_code == 400
        mock_evidence.handle_interaction.assert_not_called()

    @patch.object(dependencies, "_evidence")
    def test_non_object_payload(self, mock_evidence):
        resp = client.post("/slack/interactions",
                           content=urlencode({"payload": "[1, 2]"}), headers=FORM)
        assert resp.status_code == 400

    @patch.object(dependencies, "_evidence")
    def test_missing_payload(self, mock_evidence):
        resp = client.post("/slack/interactions", content="", headers=FORM)
        assert resp.status_code == 400
