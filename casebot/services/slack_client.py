# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Chat-platform gateway — thin HTTP client over the Slack Web API.

Every call raises CollaboratorFailure on transport errors or a non-ok reply;
callers that run after a committed transition log and swallow it.
"""
from typing import Any, Dict, List, Optional

import httpx

from casebot.core.config import settings
from casebot.core.errors import CollaboratorFailure
from casebot.core.logging import get_logger
from casebot.metrics import GATEWAY_FAILURES

logger = get_logger(__name__)


class SlackClient:
    def __init__(self, token: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None) -> None:
        self._token = token if token is not None else settings.SLACK_BOT_TOKEN
        self._base_url = (base_url or settings.SLACK_API_URL).rstrip("/")
        self._timeout = timeout or settings.SLACK_TIMEOUT

    # ── Responses ─────────────────────────────────────────────────────

    def respond(self, response_url: str, payload: Dict[str, Any]) -> None:
        """Deliver a command reply through the per-invocation response URL."""
        try:
            with httpx.Client(timeout=self._timeout) as client:
                resp = client.post(response_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            GATEWAY_FAILURES.labels(gateway="slack", operation="respond").inc()
            raise CollaboratorFailure(f"response_url delivery failed: {exc}") from exc

    # ── Web API ───────────────────────────────────────────────────────

    def post_message(self, channel: str, text: str = "",
                     blocks: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"channel": channel, "text": text}
        if blocks:
            body["blocks"] = blocks
        return self._call("chat.postMessage", body)

    def post_ephemeral(self, channel: str, user: str, text: str) -> Dict[str, Any]:
        return self._call("chat.postEphemeral", {"channel": channel, "user": user, "text": text})

    def archive_channel(self, channel: str) -> Dict[str, Any]:
        return self._call("conversations.archive", {"channel": channel})

    def open_modal(self, trigger_id: str, view: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("views.open", {"trigger_id": trigger_id, "view": view})

    def open_dm(self, user: str) -> str:
        data = self._call("conversations.open", {"users": user})
        return data["channel"]["id"]

    def upload_file(self, channel: str, filename: str, content: bytes,
                    initial_comment: str = "") -> Dict[str, Any]:
        ticket = self._call(
            "files.getUploadURLExternal",
            {"filename": filename, "length": len(content)},
            form=True,
        )
        try:
            with httpx.Client(timeout=self._timeout) as client:
                resp = client.post(ticket["upload_url"], content=content)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            GATEWAY_FAILURES.labels(gateway="slack", operation="files.upload").inc()
            raise CollaboratorFailure(f"file upload failed: {exc}") from exc
        return self._call("files.completeUploadExternal", {
            "files": [{"id": ticket["file_id"], "title": filename}],
            "channel_id": channel,
            "initial_comment": initial_comment,
        })

    # ── Private ───────────────────────────────────────────────────────

    def _call(self, method: str, body: Dict[str, Any], form: bool = False) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            with httpx.Client(timeout=self._timeout) as client:
                if form:
                    resp = client.post(f"{self._base_url}/{method}", data=body, headers=headers)
                else:
                    resp = client.post(f"{self._base_url}/{method}", json=body, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            GATEWAY_FAILURES.labels(gateway="slack", operation=method).inc()
            raise CollaboratorFailure(f"slack {method} failed: {exc}") from exc
        if not data.get("ok"):
            GATEWAY_FAILURES.labels(gateway="slack", operation=method).inc()
            raise CollaboratorFailure(f"slack {method} returned error: {data.get('error', 'unknown')}")
        logger.debug("Slack call ok method=%s", method)
        return data
