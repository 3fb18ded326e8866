"""
External collaborators used by the login throttle.

The engine only needs three small capabilities from its host:

- AuditSink: operational audit records (who got throttled, internal errors)
- NotificationSink: email-style delivery of the failed-login alert
- SiteInfo: the site name used to label alert subjects

The defaults here write to the standard logging tree so the engine works
out of the box; hosts plug in EmailSender (or anything with a matching
``send``) for real alert delivery.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from throttleguard.utils.structured_logger import get_logger

logger = get_logger(__name__)

AUDIT_LOGGER_NAME = "throttleguard.audit"
AUDIT_CATEGORY = "LoginThrottling"

# Severity names used in audit records
INFORMATION = "Information"
WARNING = "Warning"
ERROR = "Error"

_SEVERITY_LEVELS = {
    "debug": logging.DEBUG,
    "information": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class AuditSink(Protocol):
    def write(self, message: str, category: str, severity: str) -> None:
        ...


class NotificationSink(Protocol):
    def send(self, to_address: str, subject: str, body: str) -> bool:
        ...


@dataclass(frozen=True)
class SiteDetails:
    site_name: str


class SiteInfo(Protocol):
    def get(self) -> SiteDetails:
        ...


class LoggingAuditSink:
    """Audit sink that emits records on the ``throttleguard.audit`` logger"""

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME):
        self._logger = get_logger(logger_name)

    def write(self, message: str, category: str, severity: str = INFORMATION) -> None:
        level = _SEVERITY_LEVELS.get(str(severity).lower(), logging.INFO)
        self._logger.log(level, message, extra={"category": category, "severity": severity})


class LoggingNotificationSink:
    """Notification sink for development: logs the alert instead of mailing it"""

    def send(self, to_address: str, subject: str, body: str) -> bool:
        logger.warning(f"Alert for {to_address}: {subject}\n{body}")
        return True


class StaticSiteInfo:
    """Site info with a fixed name"""

    def __init__(self, site_name: str = "Login Throttle"):
        self._details = SiteDetails(site_name=site_name)

    def get(self) -> SiteDetails:
        return self._details
