"""
Per-source login throttle to prevent brute-force attacks.

In-memory attempt tracker keyed by source address. Every login attempt is
counted; once a source goes over ``max_attempts`` it is blocked for
``throttle_duration``. The first attempt after the block expires forgives
it and starts a new count. Idle, unblocked sources are swept out of memory
at most once per CLEANUP_INTERVAL.

Thread-safe: each source's summary has its own lock, so concurrent attempts
for one source are serialized while different sources never contend. The
map itself is guarded by a short-lived lock used only for lookup, insert
and removal.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, NamedTuple, Optional, Tuple

from throttleguard.services.collaborators import AUDIT_CATEGORY, INFORMATION, AuditSink
from throttleguard.utils.clock import Clock, utc_now
from throttleguard.utils.structured_logger import get_logger

logger = get_logger(__name__)

UNKNOWN_SOURCE = "null-IP"
CLEANUP_INTERVAL = timedelta(minutes=5)
STALE_AFTER = timedelta(hours=1)


def normalize_source(source: Optional[str]) -> str:
    """Source key for a caller-supplied address; missing addresses share one bucket"""
    if source is None:
        return UNKNOWN_SOURCE
    source = str(source).strip()
    return source or UNKNOWN_SOURCE


@dataclass
class AttemptSummary:
    """Attempt counters for one source address.

    ``None`` timestamps mean "unset". Mutate only while holding ``lock``.
    """
    number_of_attempts: int = 0
    first_attempt_time: Optional[datetime] = None
    last_attempt_time: Optional[datetime] = None
    throttled_until: Optional[datetime] = None
    evicted: bool = field(default=False, repr=False)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add_attempt(self, now: datetime) -> None:
        if self.first_attempt_time is None:
            self.first_attempt_time = now
        self.last_attempt_time = now
        self.number_of_attempts += 1

    def reset_attempts(self, now: datetime) -> None:
        self.number_of_attempts = 0
        self.first_attempt_time = now

    def is_throttled(self, now: datetime) -> bool:
        return self.throttled_until is not None and self.throttled_until > now

    def has_expired_throttle(self, now: datetime) -> bool:
        return self.throttled_until is not None and self.throttled_until <= now

    def is_stale(self, now: datetime, stale_after: timedelta) -> bool:
        return (
            not self.is_throttled(now)
            and self.last_attempt_time is not None
            and now - self.last_attempt_time > stale_after
        )

    def copy(self) -> "AttemptSummary":
        return AttemptSummary(
            number_of_attempts=self.number_of_attempts,
            first_attempt_time=self.first_attempt_time,
            last_attempt_time=self.last_attempt_time,
            throttled_until=self.throttled_until,
            evicted=self.evicted,
        )


class ThrottleLimits(NamedTuple):
    max_attempts: int = 10
    throttle_duration: timedelta = timedelta(minutes=10)


class ThrottleTransition(NamedTuple):
    """A source that just went over the limit"""
    source: str
    throttled_until: datetime
    attempts: int
    throttle_duration: timedelta


class ThrottleStore:
    """Tracks attempts per source and decides admit/deny."""

    def __init__(
        self,
        limits: Optional[ThrottleLimits] = None,
        audit_sink: Optional[AuditSink] = None,
        clock: Clock = utc_now,
        cleanup_interval: timedelta = CLEANUP_INTERVAL,
        stale_after: timedelta = STALE_AFTER,
    ):
        # Swapped wholesale by the owner; read once per operation
        self.limits = limits or ThrottleLimits()
        self.audit_sink = audit_sink
        self.cleanup_interval = cleanup_interval
        self.stale_after = stale_after
        self._clock = clock

        self._summaries: Dict[str, AttemptSummary] = {}
        self._map_lock = threading.Lock()
        self._cleanup_lock = threading.Lock()
        self._last_cleanup = clock()

    def __len__(self) -> int:
        with self._map_lock:
            return len(self._summaries)

    def is_throttled(self, source: Optional[str]) -> bool:
        """True if the source is blocked right now. Never mutates."""
        key = normalize_source(source)
        with self._map_lock:
            summary = self._summaries.get(key)
        return summary is not None and summary.is_throttled(self._clock())

    def record_attempt(self, source: Optional[str]) -> bool:
        """
        Count a login attempt and decide whether it may proceed.

        Returns:
            True to admit, False to deny
        """
        key = normalize_source(source)
        admitted, transition = self._track(key, self.limits)

        if transition is not None:
            self._audit_throttled(transition)

        self.cleanup_if_due()
        return admitted

    def _track(self, key: str, limits: ThrottleLimits) -> Tuple[bool, Optional[ThrottleTransition]]:
        while True:
            summary = self._get_or_create(key)
            with summary.lock:
                if summary.evicted:
                    # Swept between lookup and lock; start over with a fresh summary
                    continue

                now = self._clock()
                if summary.is_throttled(now):
                    return False, None

                summary.add_attempt(now)

                # Past the ban: forgive and count this as the first attempt
                if summary.has_expired_throttle(now):
                    summary.throttled_until = None
                    return True, None

                if summary.number_of_attempts > limits.max_attempts:
                    attempts = summary.number_of_attempts
                    summary.throttled_until = now + limits.throttle_duration
                    summary.reset_attempts(now)
                    return False, ThrottleTransition(
                        source=key,
                        throttled_until=summary.throttled_until,
                        attempts=attempts,
                        throttle_duration=limits.throttle_duration,
                    )

                return True, None

    def _get_or_create(self, key: str) -> AttemptSummary:
        with self._map_lock:
            summary = self._summaries.get(key)
            if summary is None:
                summary = AttemptSummary()
                self._summaries[key] = summary
            return summary

    def _audit_throttled(self, transition: ThrottleTransition) -> None:
        minutes = int(transition.throttle_duration.total_seconds() // 60)
        message = (
            f"Throttling IP '{transition.source}' until "
            f"'{transition.throttled_until.isoformat()}' ({minutes} minutes) "
            f"due to too many login attempts ({transition.attempts})."
        )
        if self.audit_sink is None:
            logger.warning(message)
            return
        try:
            self.audit_sink.write(message, AUDIT_CATEGORY, INFORMATION)
        except Exception as e:
            logger.warning(f"Audit write failed for throttle of '{transition.source}': {e}")

    def snapshot(self, source: Optional[str]) -> Optional[AttemptSummary]:
        """Copy of the summary for a source, or None if untracked"""
        key = normalize_source(source)
        with self._map_lock:
            summary = self._summaries.get(key)
        if summary is None:
            return None
        with summary.lock:
            return summary.copy()

    # ==================== Cleanup ====================

    def cleanup_if_due(self) -> int:
        """
        Evict stale sources, at most once per cleanup interval.

        Returns:
            Number of summaries removed (0 when the sweep was not due)
        """
        if self._clock() - self._last_cleanup < self.cleanup_interval:
            return 0

        # Another caller is already sweeping
        if not self._cleanup_lock.acquire(blocking=False):
            return 0
        try:
            now = self._clock()
            if now - self._last_cleanup < self.cleanup_interval:
                return 0
            removed = self._sweep(now)
            self._last_cleanup = now
            return removed
        finally:
            self._cleanup_lock.release()

    def _sweep(self, now: datetime) -> int:
        with self._map_lock:
            candidates = list(self._summaries.items())

        removed = 0
        for key, summary in candidates:
            with summary.lock:
                if summary.evicted or not summary.is_stale(now, self.stale_after):
                    continue
                summary.evicted = True
                with self._map_lock:
                    if self._summaries.get(key) is summary:
                        del self._summaries[key]
                removed += 1

        if removed:
            logger.info(f"Login throttle cleanup removed {removed} stale source(s), {len(candidates) - removed} remain")
        else:
            logger.debug(f"Login throttle cleanup found nothing stale among {len(candidates)} source(s)")
        return removed
