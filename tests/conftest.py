"""
Test Configuration and Fixtures

Central configuration for pytest including:
- A controllable UTC clock for driving throttle and alert windows
- Recording audit and notification sinks
- Prebuilt ThrottleService instances

Usage:
    All fixtures defined here are automatically available to all tests.
"""

import pytest
import os
import sys
import threading
from datetime import datetime, timedelta, timezone

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ==================== Clock ====================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, **kwargs) -> datetime:
        with self._lock:
            self.now = self.now + timedelta(**kwargs)
            return self.now


@pytest.fixture
def clock():
    """A FakeClock starting at 2024-01-15 12:00 UTC."""
    return FakeClock()


# ==================== Collaborator Fakes ====================

class RecordingAuditSink:
    """Audit sink that keeps every record."""

    def __init__(self):
        self.records = []
        self._lock = threading.Lock()

    def write(self, message, category, severity):
        with self._lock:
            self.records.append((message, category, severity))


class RecordingNotificationSink:
    """Notification sink that keeps every sent message."""

    def __init__(self):
        self.sent = []
        self._lock = threading.Lock()

    def send(self, to_address, subject, body):
        with self._lock:
            self.sent.append((to_address, subject, body))
        return True


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def notification_sink():
    return RecordingNotificationSink()


# ==================== Service Fixtures ====================

@pytest.fixture
def settings():
    """Settings matching the documented defaults, alerts to two operators."""
    from config.loader import ThrottleSettings

    return ThrottleSettings(
        max_attempts=10,
        throttle_minutes=10,
        alert_enabled=True,
        alert_window_hours=12,
        alert_threshold=5,
        alert_recipients="ops@example.com; security@example.com",
    )


@pytest.fixture
def service(settings, clock, audit_sink, notification_sink):
    """A ThrottleService wired to fakes."""
    from throttleguard.services.collaborators import StaticSiteInfo
    from throttleguard.services.throttle_service import ThrottleService

    return ThrottleService(
        settings=settings,
        notification_sink=notification_sink,
        audit_sink=audit_sink,
        site_info=StaticSiteInfo("Test Community"),
        clock=clock,
    )


@pytest.fixture(autouse=True)
def reset_sendgrid_circuit():
    """Reset the SendGrid circuit breaker before each test to prevent cross-test contamination."""
    from throttleguard.utils.circuit_breaker import sendgrid_circuit
    sendgrid_circuit.reset()
    yield


# ==================== Pytest Configuration ====================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
