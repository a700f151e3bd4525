# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Inbound request signature verification.

The platform signs every request with HMAC-SHA256 over ``v0:{timestamp}:{body}``
and sends ``v0={hex_digest}`` in ``X-Slack-Signature``.
"""
import hashlib
import hmac
import time
from typing import Callable, Optional

MAX_REQUEST_AGE_SECONDS = 300
SIGNATURE_VERSION = "v0"


class SignatureVerificationError(Exception):
    """Raised when a request signature cannot be trusted."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"signature verification failed: {reason}")


def compute_signature(signing_secret: str, timestamp: str, raw_body: bytes) -> str:
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + raw_body
    digest = hmac.new(signing_secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_signature(
    *,
    signing_secret: str,
    timestamp: Optional[str],
    signature: Optional[str],
    raw_body: bytes,
    max_age_seconds: int = MAX_REQUEST_AGE_SECONDS,
    clock: Callable[[], float] = time.time,
) -> None:
    """Raise SignatureVerificationError unless the request is fresh and correctly signed."""
    if not signing_secret:
        raise SignatureVerificationError("missing_signing_secret")
    if not timestamp:
        raise SignatureVerificationError("missing_timestamp_header")
    if not signature:
        raise SignatureVerificationError("missing_signature_header")

    try:
        ts = int(timestamp)
    except (ValueError, TypeError):
        raise SignatureVerificationError("invalid_timestamp")

    age = abs(clock() - ts)
    if age > max_age_seconds:
        raise SignatureVerificationError(f"stale_timestamp (age={int(age)}s, max={max_age_seconds}s)")

    expected = compute_signature(signing_secret, timestamp, raw_body)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        raise SignatureVerificationError("bad_signature")
