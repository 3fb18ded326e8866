"""
Login throttle service - the host-facing entry point.

Wires the per-source ThrottleStore and the site-wide FailureLog together,
owns the current settings and applies configuration refreshes.

Usage:
    from config.loader import YamlConfigSource
    from throttleguard.services.throttle_service import ThrottleService

    service = ThrottleService.from_config_source(YamlConfigSource())

    if service.is_throttled(ip) or not service.record_attempt(ip):
        ...  # reject with 429
    if not authenticate(...):
        service.record_failure(ip)

Create one instance at startup and share it; it is safe to call from any
number of request threads.

Error policy: bookkeeping bugs must never lock legitimate users out, so an
unexpected error while recording an attempt admits the attempt (fail open)
and is reported to the log and the audit sink.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from config.loader import ConfigSource, ThrottleSettings, load_settings
from throttleguard.services.collaborators import (
    AUDIT_CATEGORY,
    ERROR,
    AuditSink,
    LoggingAuditSink,
    NotificationSink,
    SiteInfo,
)
from throttleguard.services.failure_log import AlertPolicy, FailureLog
from throttleguard.services.login_throttle import (
    CLEANUP_INTERVAL,
    STALE_AFTER,
    ThrottleLimits,
    ThrottleStore,
    normalize_source,
)
from throttleguard.utils.clock import Clock, utc_now
from throttleguard.utils.structured_logger import get_logger

logger = get_logger(__name__)


def _limits_for(settings: ThrottleSettings) -> ThrottleLimits:
    return ThrottleLimits(
        max_attempts=settings.max_attempts,
        throttle_duration=settings.throttle_duration,
    )


def _policy_for(settings: ThrottleSettings) -> AlertPolicy:
    return AlertPolicy(
        enabled=settings.alert_enabled,
        recipients=settings.alert_recipients,
        threshold=settings.alert_threshold,
        window=settings.alert_window,
    )


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class ThrottleService:
    """Login throttle composition root"""

    def __init__(
        self,
        settings: Optional[ThrottleSettings] = None,
        notification_sink: Optional[NotificationSink] = None,
        audit_sink: Optional[AuditSink] = None,
        site_info: Optional[SiteInfo] = None,
        clock: Clock = utc_now,
    ):
        self._settings = settings or ThrottleSettings()
        self._clock = clock
        self.audit_sink = audit_sink or LoggingAuditSink()

        self.store = ThrottleStore(
            limits=_limits_for(self._settings),
            audit_sink=self.audit_sink,
            clock=clock,
            cleanup_interval=CLEANUP_INTERVAL,
            stale_after=STALE_AFTER,
        )
        self.failure_log = FailureLog(
            policy=_policy_for(self._settings),
            notification_sink=notification_sink,
            site_info=site_info,
            audit_sink=self.audit_sink,
            clock=clock,
            cleanup_interval=CLEANUP_INTERVAL,
        )

        logger.info(
            f"Login throttle ready: max_attempts={self._settings.max_attempts}, "
            f"throttle_minutes={self._settings.throttle_minutes}, "
            f"alerts={'on' if self._settings.alert_enabled else 'off'} "
            f"({len(self._settings.alert_recipients)} recipient(s))"
        )

    @classmethod
    def from_config_source(cls, source: ConfigSource, **collaborators: Any) -> "ThrottleService":
        """Build a service with settings read from a config source"""
        return cls(settings=load_settings(source), **collaborators)

    # ==================== Configuration ====================

    @property
    def settings(self) -> ThrottleSettings:
        return self._settings

    def apply_settings(self, settings: ThrottleSettings) -> None:
        """
        Replace the configuration wholesale.

        In-flight calls keep whichever limits they already read; new calls
        see the new values. Tracked attempts and the failure log are kept.
        """
        self._settings = settings
        self.store.limits = _limits_for(settings)
        self.failure_log.policy = _policy_for(settings)
        logger.info(f"Login throttle settings updated: {settings.to_options()}")

    def reload(self, source: ConfigSource) -> ThrottleSettings:
        """Re-read settings from a config source and apply them"""
        settings = load_settings(source)
        self.apply_settings(settings)
        return settings

    # ==================== Host Operations ====================

    def is_throttled(self, source: Optional[str]) -> bool:
        """Fast read-only check: is this source blocked right now?"""
        try:
            return self.store.is_throttled(source)
        except Exception as e:
            self._report_error("checking login throttle", source, e)
            return False

    def record_attempt(self, source: Optional[str]) -> bool:
        """
        Count a login attempt.

        Returns:
            True to let the attempt proceed, False to reject it
        """
        try:
            return self.store.record_attempt(source)
        except Exception as e:
            return self._admit_on_error(source, e)

    def record_failure(self, source: Optional[str]) -> None:
        """Log a failed authentication for site-wide alerting"""
        try:
            self.failure_log.record_failure(source)
        except Exception as e:
            self._report_error("logging failed login attempt", source, e)

    # ==================== Introspection ====================

    def status(self, source: Optional[str]) -> Dict[str, Any]:
        """Throttle status for one source"""
        key = normalize_source(source)
        summary = self.store.snapshot(key)
        now = self._clock()

        if summary is None:
            return {
                "source": key,
                "tracked": False,
                "throttled": False,
                "number_of_attempts": 0,
                "first_attempt_time": None,
                "last_attempt_time": None,
                "throttled_until": None,
                "retry_after_seconds": 0,
            }

        throttled = summary.is_throttled(now)
        retry_after = 0
        if throttled:
            retry_after = max(1, int((summary.throttled_until - now).total_seconds()))

        return {
            "source": key,
            "tracked": True,
            "throttled": throttled,
            "number_of_attempts": summary.number_of_attempts,
            "first_attempt_time": _isoformat(summary.first_attempt_time),
            "last_attempt_time": _isoformat(summary.last_attempt_time),
            "throttled_until": _isoformat(summary.throttled_until),
            "retry_after_seconds": retry_after,
        }

    def stats(self) -> Dict[str, Any]:
        return {
            "tracked_sources": len(self.store),
            "failed_logins_in_log": self.failure_log.count(),
            "alert_threshold": self._settings.alert_threshold,
            "alert_window_hours": self._settings.alert_window_hours,
        }

    # ==================== Error Policy ====================

    def _admit_on_error(self, source: Optional[str], error: Exception) -> bool:
        """On internal error, admit the attempt and report it."""
        self._report_error("tracking login attempt", source, error)
        return True

    def _report_error(self, operation: str, source: Optional[str], error: Exception) -> None:
        key = normalize_source(source)
        logger.error(f"Error while {operation} for '{key}': {error}", exc_info=True)
        try:
            self.audit_sink.write(
                f"Error while {operation} for '{key}': '{error!r}'.",
                AUDIT_CATEGORY,
                ERROR,
            )
        except Exception as audit_error:
            logger.debug(f"Audit write failed: {audit_error}")
