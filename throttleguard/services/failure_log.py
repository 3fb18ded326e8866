"""
Site-wide failed login log with threshold alerting.

Every failed authentication is appended to an in-memory log. When the log
holds more than ``threshold`` entries an alert is mailed to each configured
recipient and the log is cleared, so one spike produces one alert.

Entries older than the alert window are pruned at most once per
CLEANUP_INTERVAL, so the count used for the threshold check reflects the
log as of the last prune rather than an exact count over the window.

The append, the threshold check and the clear happen under a single lock;
mail delivery happens after the lock is released.
"""

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Deque, List, NamedTuple, Optional, Tuple

from throttleguard.services.collaborators import (
    AUDIT_CATEGORY,
    ERROR,
    AuditSink,
    NotificationSink,
    SiteInfo,
    StaticSiteInfo,
)
from throttleguard.services.login_throttle import CLEANUP_INTERVAL, normalize_source
from throttleguard.utils.clock import Clock, utc_now
from throttleguard.utils.structured_logger import get_logger

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


@dataclass(frozen=True)
class FailureLogEntry:
    source: str
    timestamp: datetime


class AlertPolicy(NamedTuple):
    enabled: bool = True
    recipients: Tuple[str, ...] = ()
    threshold: int = 50
    window: timedelta = timedelta(hours=12)


class FailureAlert(NamedTuple):
    """Snapshot of the log taken when the threshold was crossed"""
    count: int
    threshold: int
    window: timedelta
    first_failure: datetime
    last_failure: datetime
    recipients: Tuple[str, ...]


def compose_alert(alert: FailureAlert, site_name: str) -> Tuple[str, str]:
    """Subject and body for an excessive failed login alert"""
    hours = int(alert.window.total_seconds() // 3600)
    subject = f"[{site_name}] : Excessive Failed Login Attempts - Count={alert.count}"
    body = (
        f"There were {alert.count} failed logins in the past '{hours}' hours "
        f"(First={alert.first_failure.strftime(TIMESTAMP_FORMAT)}, "
        f"Last={alert.last_failure.strftime(TIMESTAMP_FORMAT)}). "
        f"This is over the threshold of {alert.threshold} set in the configuration. "
        f"The counter will be reset."
    )
    return subject, body


class FailureLog:
    """Rolling log of failed logins across all sources."""

    def __init__(
        self,
        policy: Optional[AlertPolicy] = None,
        notification_sink: Optional[NotificationSink] = None,
        site_info: Optional[SiteInfo] = None,
        audit_sink: Optional[AuditSink] = None,
        clock: Clock = utc_now,
        cleanup_interval: timedelta = CLEANUP_INTERVAL,
    ):
        # Swapped wholesale by the owner; read once per operation
        self.policy = policy or AlertPolicy()
        self.notification_sink = notification_sink
        self.site_info = site_info or StaticSiteInfo()
        self.audit_sink = audit_sink
        self.cleanup_interval = cleanup_interval
        self._clock = clock

        self._entries: Deque[FailureLogEntry] = deque()
        self._lock = threading.Lock()
        self._last_prune = clock()

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> List[FailureLogEntry]:
        with self._lock:
            return list(self._entries)

    def record_failure(self, source: Optional[str]) -> None:
        """Append a failure and alert if the log has gone over the threshold."""
        key = normalize_source(source)
        policy = self.policy

        with self._lock:
            now = self._clock()
            self._entries.append(FailureLogEntry(source=key, timestamp=now))
            self._prune_locked(now, policy.window)
            alert = self._take_alert_locked(policy)

        if alert is not None:
            self._send_alert(alert)

    def prune_if_due(self) -> int:
        """Drop entries older than the alert window, at most once per cleanup interval"""
        with self._lock:
            return self._prune_locked(self._clock(), self.policy.window)

    def _prune_locked(self, now: datetime, window: timedelta) -> int:
        if now - self._last_prune < self.cleanup_interval:
            return 0

        cutoff = now - window
        before = len(self._entries)
        self._entries = deque(entry for entry in self._entries if entry.timestamp >= cutoff)
        self._last_prune = now

        removed = before - len(self._entries)
        if removed:
            logger.debug(f"Pruned {removed} failed login(s) older than {window}")
        return removed

    def _take_alert_locked(self, policy: AlertPolicy) -> Optional[FailureAlert]:
        if not policy.enabled or not policy.recipients:
            return None

        count = len(self._entries)
        if count <= policy.threshold:
            return None

        timestamps = [entry.timestamp for entry in self._entries]
        alert = FailureAlert(
            count=count,
            threshold=policy.threshold,
            window=policy.window,
            first_failure=min(timestamps),
            last_failure=max(timestamps),
            recipients=policy.recipients,
        )
        self._entries.clear()
        return alert

    def _send_alert(self, alert: FailureAlert) -> None:
        subject, body = compose_alert(alert, self._site_name())
        logger.warning(
            f"Failed logins over threshold ({alert.count} > {alert.threshold}), "
            f"alerting {len(alert.recipients)} recipient(s)"
        )

        if self.notification_sink is None:
            logger.warning(f"No notification sink configured, alert not delivered: {subject}")
            return

        for recipient in alert.recipients:
            address = recipient.strip()
            if not address:
                continue
            try:
                if self.notification_sink.send(address, subject, body) is False:
                    logger.error(f"Login alert to {address} was not delivered")
                    self._audit_error(f"Failed login alert to '{address}' was not delivered")
            except Exception as e:
                logger.error(f"Failed to send login alert to {address}: {e}", exc_info=True)
                self._audit_error(f"Error while sending failed login alert to '{address}': {e}")

    def _site_name(self) -> str:
        try:
            return self.site_info.get().site_name
        except Exception as e:
            logger.warning(f"Site info unavailable for alert subject: {e}")
            return "Unknown site"

    def _audit_error(self, message: str) -> None:
        if self.audit_sink is None:
            return
        try:
            self.audit_sink.write(message, AUDIT_CATEGORY, ERROR)
        except Exception as e:
            logger.debug(f"Audit write failed: {e}")
