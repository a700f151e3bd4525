# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metrics — single source of truth for all metric objects.
Imported by services and middleware. Never instantiated in controllers.
"""
from prometheus_client import Counter, Gauge, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "case_http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "case_http_request_duration_seconds", "HTTP request latency", ["method", "endpoint"]
)
HTTP_ERRORS = Counter(
    "case_http_errors_total", "Total HTTP errors", ["method", "endpoint", "status"]
)

# ── Admission ──
COMMANDS_TOTAL = Counter(
    "case_commands_total", "Slash commands dispatched", ["verb", "outcome"]
)
ACCESS_DENIED = Counter(
    "case_access_denied_total", "Commands rejected by the access gate", ["reason"]
)
RATE_LIMITED = Counter(
    "case_rate_limited_total", "Requests rejected by the rate governor"
)
RATE_LIMIT_KEYS = Gauge(
    "case_rate_limit_keys", "Live keys in the rate governor table"
)

# ── Lifecycle ──
TRANSITIONS_TOTAL = Counter(
    "case_transitions_total", "Committed lifecycle transitions", ["transition"]
)
TRANSITION_CONFLICTS = Counter(
    "case_transition_conflicts_total", "Concurrent-write conflicts detected", ["transition"]
)
INCIDENT_RESOLUTION = Histogram(
    "case_incident_resolution_seconds",
    "Time from escalation to resolution (seconds)",
    buckets=[60, 300, 600, 1800, 3600, 7200, 14400, 86400],
)
EVENTS_ADDED = Counter(
    "case_events_added_total", "Evidence records appended"
)

# ── Gateways ──
GATEWAY_FAILURES = Counter(
    "case_gateway_failures_total", "Outbound gateway call failures", ["gateway", "operation"]
)
