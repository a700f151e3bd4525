# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Sliding-window rate governor keyed by (tenant, identity, command).

A key that exceeds N requests inside a W-second window is hard-blocked for
B seconds. State lives in process memory only; a multi-instance deployment
gets one independent table per process.
"""
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from casebot.core.logging import get_logger
from casebot.metrics import RATE_LIMIT_KEYS, RATE_LIMITED
from casebot.schemas import Admission, RateLimitStatus

logger = get_logger(__name__)


@dataclass
class _Entry:
    timestamps: list[float] = field(default_factory=list)
    blocked_until: Optional[float] = None
    lock: threading.Lock = field(default_factory=threading.Lock)
    evicted: bool = False


class RateGovernor:
    def __init__(self, max_requests: int = 60, window_seconds: int = 60,
                 block_seconds: int = 300,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.max_requests = max_requests
        self.window = window_seconds
        self.block = block_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str, str], _Entry] = {}
        self._table_lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    # ── Admission ─────────────────────────────────────────────────────

    def admit(self, tenant: str, identity: str, command: str) -> Admission:
        key = (tenant, identity, command)
        while True:
            entry = self._entry_for(key)
            with entry.lock:
                if entry.evicted:
                    # Swept between lookup and lock; fetch a fresh entry.
                    continue
                return self._admit_locked(entry, key)

    def _admit_locked(self, entry: _Entry, key) -> Admission:
        now = self._clock()
        if entry.blocked_until is not None and entry.blocked_until > now:
            remaining = math.ceil(entry.blocked_until - now)
            RATE_LIMITED.inc()
            return Admission(
                allowed=False,
                retry_after_seconds=remaining,
                message=f"⚠️ Rate limit exceeded. Please wait {remaining} seconds before trying again.",
            )

        cutoff = now - self.window
        entry.timestamps = [t for t in entry.timestamps if t > cutoff]

        if len(entry.timestamps) >= self.max_requests:
            entry.blocked_until = now + self.block
            RATE_LIMITED.inc()
            logger.warning(
                "Rate limit violation, key blocked",
                extra={"context": {"tenant": key[0], "identity": key[1],
                                   "command": key[2], "block_seconds": self.block}},
            )
            return Admission(
                allowed=False,
                retry_after_seconds=self.block,
                message=(
                    "⚠️ Rate limit exceeded. You've made too many requests. "
                    f"Please wait {_describe_seconds(self.block)} before trying again."
                ),
            )

        entry.timestamps.append(now)
        return Admission(allowed=True)

    def _entry_for(self, key) -> _Entry:
        with self._table_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
                RATE_LIMIT_KEYS.set(len(self._entries))
            return entry

    # ── Monitoring ────────────────────────────────────────────────────

    def status(self, tenant: str, identity: str, command: str) -> RateLimitStatus:
        with self._table_lock:
            entry = self._entries.get((tenant, identity, command))
        if entry is None:
            return RateLimitStatus(requests=0, remaining=self.max_requests)
        now = self._clock()
        with entry.lock:
            current = [t for t in entry.timestamps if t > now - self.window]
            blocked = entry.blocked_until if entry.blocked_until and entry.blocked_until > now else None
        return RateLimitStatus(
            requests=len(current),
            remaining=max(0, self.max_requests - len(current)),
            blocked_until=blocked,
        )

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._entries)

    # ── Maintenance ───────────────────────────────────────────────────

    def sweep(self) -> int:
        """Drop keys with no recent requests and no live block. Returns how many were removed."""
        now = self._clock()
        cutoff = now - self.window
        removed = 0
        with self._table_lock:
            for key, entry in list(self._entries.items()):
                with entry.lock:
                    entry.timestamps = [t for t in entry.timestamps if t > cutoff]
                    if entry.timestamps:
                        continue
                    if entry.blocked_until is not None and entry.blocked_until > now:
                        continue
                    entry.evicted = True
                    del self._entries[key]
                    removed += 1
            RATE_LIMIT_KEYS.set(len(self._entries))
        if removed:
            logger.debug("Rate governor sweep removed %d idle keys", removed)
        return removed

    def start_sweeper(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="rate-governor-sweeper",
                                         daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.window):
            try:
                self.sweep()
            except Exception:
                logger.exception("Rate governor sweep failed")


def _describe_seconds(seconds: int) -> str:
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds} seconds"
