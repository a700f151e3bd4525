# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Input validation — pure functions, no I/O.

Every free-text field passes through here before anything else sees it.
Each function returns the cleaned value or raises ValidationError with a
message that is safe to echo back to the caller.
"""

import re
from typing import NamedTuple

from casebot.core.errors import ValidationError

TITLE_MAX_LENGTH = 200
COMMAND_MAX_LENGTH = 500

USER_ID_PATTERN = re.compile(r"^U[0-9A-Z]{8,}$")
CHANNEL_ID_PATTERN = re.compile(r"^C[0-9A-Z]{8,}$")

# Platform-escaped user mention: <@U12345678> or <@U12345678|alice>
_ESCAPED_MENTION = re.compile(r"<@(U[0-9A-Z]{8,})(?:\|[\w.\- ]{0,80})?>")
_MENTION = re.compile(r"^(?:<@(?P<escaped>[A-Z0-9]+)(?:\|[^<>]*)?>|@(?P<plain>[A-Z0-9]+))$")

XSS_PATTERNS = (
    re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<iframe[^>]*>.*?</iframe>", re.IGNORECASE | re.DOTALL),
    re.compile(r"javascript:\s*", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<img[^>]*>", re.IGNORECASE),
    re.compile(r"<svg[^>]*>", re.IGNORECASE),
)

DANGEROUS_COMMAND_PATTERNS = (
    re.compile(r"[;&|`$(){}\[\]<>]"),
    re.compile(r"\.\./"),
    re.compile(r"\x00"),
)

_HTML_ENTITIES = str.maketrans({
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
})


class ParsedCommand(NamedTuple):
    verb: str
    remainder: str


def sanitize_input(value: str) -> str:
    """Strip executable markup, then entity-escape what is left."""
    sanitized = (value or "").strip()
    for pattern in XSS_PATTERNS:
        sanitized = pattern.sub("", sanitized)
    return sanitized.translate(_HTML_ENTITIES)


def validate_title(title: str) -> str:
    trimmed = (title or "").strip()
    if not trimmed:
        raise ValidationError("Title cannot be empty")
    if len(trimmed) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be less than {TITLE_MAX_LENGTH} characters")
    if ".." in trimmed or "//" in trimmed or "\\\\" in trimmed:
        raise ValidationError("Title contains invalid characters")
    sanitized = sanitize_input(trimmed).strip()
    if not sanitized:
        raise ValidationError("Title cannot be empty")
    return sanitized


def validate_command_text(text: str) -> str:
    """Reject over-long text and shell/format metacharacters. The text is never executed."""
    text = text or ""
    if len(text) > COMMAND_MAX_LENGTH:
        raise ValidationError("Command text too long")
    for pattern in DANGEROUS_COMMAND_PATTERNS:
        if pattern.search(text):
            raise ValidationError("Command contains invalid characters")
    return text.strip()


def normalize_mentions(text: str) -> str:
    """Rewrite platform-escaped user mentions to the plain ``@U…`` form."""
    return _ESCAPED_MENTION.sub(lambda m: f"@{m.group(1)}", text or "")


def parse_command(text: str) -> ParsedCommand:
    """Split ``verb rest…`` after validation. Empty text yields verb ``""``."""
    validated = validate_command_text(normalize_mentions(text))
    if not validated:
        return ParsedCommand("", "")
    parts = re.split(r"\s+", validated, maxsplit=1)
    remainder = parts[1].strip() if len(parts) > 1 else ""
    return ParsedCommand(parts[0].lower(), remainder)


def validate_identity_token(user_id: str) -> str:
    if not user_id or not USER_ID_PATTERN.match(user_id):
        raise ValidationError("Invalid Slack user ID format")
    return user_id


def validate_origin_token(channel_id: str) -> str:
    if not channel_id or not CHANNEL_ID_PATTERN.match(channel_id):
        raise ValidationError("Invalid Slack channel ID format")
    return channel_id


def parse_mention(target: str) -> str:
    """Extract a well-formed user id from ``<@U…>``, ``<@U…|name>`` or ``@U…``."""
    match = _MENTION.match((target or "").strip())
    if not match:
        raise ValidationError(
            "Please mention a user to transfer incident commander role to "
            "(e.g., `/case transfer @username`)."
        )
    return validate_identity_token(match.group("escaped") or match.group("plain"))
