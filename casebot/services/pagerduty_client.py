# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Paging client — PagerDuty Events v2.
Fire-and-forget: failures are logged and reported as False, never raised.
"""
from datetime import datetime, timezone
from typing import Optional

import httpx

from casebot.core.config import settings
from casebot.core.logging import get_logger
from casebot.metrics import GATEWAY_FAILURES

logger = get_logger(__name__)


def dedup_key(investigation_id: str) -> str:
    return f"case-{investigation_id}"


class PagerDutyClient:
    def __init__(self, routing_key: Optional[str] = None, events_url: Optional[str] = None,
                 timeout: Optional[float] = None) -> None:
        self._routing_key = routing_key if routing_key is not None else settings.PAGERDUTY_ROUTING_KEY
        self._events_url = events_url or settings.PAGERDUTY_EVENTS_URL
        self._timeout = timeout or settings.PAGERDUTY_TIMEOUT

    @property
    def enabled(self) -> bool:
        return bool(self._routing_key)

    def trigger_incident(self, investigation_id: str, investigation_name: str, title: str,
                         channel_id: str, incident_commander: str,
                         team_domain: str = "") -> bool:
        channel_url = (
            f"https://{team_domain}.slack.com/archives/{channel_id}"
            if team_domain else f"slack://channel?id={channel_id}"
        )
        return self._send({
            "routing_key": self._routing_key,
            "event_action": "trigger",
            "dedup_key": dedup_key(investigation_id),
            "payload": {
                "summary": f"[Case] {title}",
                "source": "case-slack-app",
                "severity": "critical",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "custom_details": {
                    "investigation_name": investigation_name,
                    "investigation_id": investigation_id,
                    "channel_id": channel_id,
                    "incident_commander": incident_commander,
                    "case_type": "incident",
                },
            },
            "links": [{"href": channel_url, "text": "View in Slack"}],
        })

    def resolve_incident(self, investigation_id: str) -> bool:
        return self._send({
            "routing_key": self._routing_key,
            "event_action": "resolve",
            "dedup_key": dedup_key(investigation_id),
        })

    def _send(self, event: dict) -> bool:
        if not self.enabled:
            logger.info("PagerDuty integration disabled (PAGERDUTY_ROUTING_KEY not set)")
            return False
        try:
            with httpx.Client(timeout=self._timeout) as client:
                resp = client.post(
                    self._events_url,
                    json=event,
                    headers={"Accept": "application/vnd.pagerduty+json;version=2"},
                )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            GATEWAY_FAILURES.labels(gateway="pagerduty", operation=event["event_action"]).inc()
            logger.warning("PagerDuty %s failed: %s", event["event_action"], exc)
            return False
        if data.get("status") != "success":
            GATEWAY_FAILURES.labels(gateway="pagerduty", operation=event["event_action"]).inc()
            logger.warning("PagerDuty %s rejected: %s", event["event_action"], data)
            return False
        logger.info("PagerDuty %s ok dedup_key=%s", event["event_action"], event["dedup_key"])
        return True
