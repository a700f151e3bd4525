# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Investigation name generation.

Names double as channel names, so they follow the platform's channel-name
rules: at most 21 chars, lowercase letters, digits and hyphens.
"""
import hashlib
import html
import re
import secrets
import time
from typing import Callable

NAME_PREFIX = "case-"
NAME_MAX_LENGTH = 21
SUFFIX_LENGTH = 3
FALLBACK_PREFIX = "case-inv-"

NAME_PATTERN = re.compile(r"^case-[a-z0-9]+(?:-[a-z0-9]+)*$")


def _random_suffix() -> str:
    return secrets.token_hex(2)[:SUFFIX_LENGTH]


def slugify(title: str) -> str:
    """Titles arrive entity-escaped; slug the text the user typed, not the escapes."""
    slug = re.sub(r"[^a-z0-9\s-]", "", html.unescape(title or "").lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or "investigation"


def generate_name(title: str) -> str:
    """``case-<slug>-<xyz>`` truncated to fit the channel-name limit."""
    slug = slugify(title)
    max_slug = NAME_MAX_LENGTH - len(NAME_PREFIX) - SUFFIX_LENGTH - 1
    if len(slug) > max_slug:
        slug = slug[:max_slug].rstrip("-")
    return f"{NAME_PREFIX}{slug}-{_random_suffix()}"


def fallback_name(title: str) -> str:
    seed = f"{title}{time.time_ns()}{secrets.token_hex(8)}".encode("utf-8")
    return FALLBACK_PREFIX + hashlib.sha256(seed).hexdigest()[:8]


def generate_unique_name(title: str, exists: Callable[[str], bool],
                         max_attempts: int = 10) -> str:
    """Try the base name, then up to ``max_attempts`` re-suffixed variants, then a hashed fallback."""
    base = generate_name(title)
    if not exists(base):
        return base

    stem = base.rsplit("-", 1)[0]
    for _ in range(max_attempts):
        candidate = f"{stem}-{_random_suffix()}"
        if not exists(candidate):
            return candidate

    return fallback_name(title)
