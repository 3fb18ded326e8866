"""
Circuit breaker for the alert mail transport.

When the mail provider keeps failing, alert delivery is skipped for a
cool-down period instead of retrying every recipient on every alert.
States: closed (sending) -> open (skipping) -> half-open (one probe allowed).
"""
import threading
import time
from throttleguard.utils.structured_logger import get_logger

logger = get_logger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half-open"


class CircuitBreaker:
    """Thread-safe circuit breaker keyed on consecutive delivery failures."""

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        recovery_timeout: float = 60
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failures = 0
        self.opened_at = 0.0
        self.state = CLOSED
        self._lock = threading.Lock()

    def record_success(self):
        with self._lock:
            if self.state != CLOSED:
                logger.info(f"Circuit breaker [{self.name}] CLOSED, delivery recovered")
            self.failures = 0
            self.state = CLOSED

    def record_failure(self):
        with self._lock:
            self.failures += 1
            if self.state == HALF_OPEN or self.failures >= self.failure_threshold:
                self.state = OPEN
                self.opened_at = time.monotonic()
                logger.warning(
                    f"Circuit breaker [{self.name}] OPEN after {self.failures} failures"
                )

    def can_execute(self) -> bool:
        with self._lock:
            if self.state != OPEN:
                return True
            if time.monotonic() - self.opened_at >= self.recovery_timeout:
                self.state = HALF_OPEN
                logger.info(f"Circuit breaker [{self.name}] HALF-OPEN, allowing a probe")
                return True
            return False

    def reset(self):
        with self._lock:
            self.failures = 0
            self.opened_at = 0.0
            self.state = CLOSED

    def get_status(self) -> dict:
        with self._lock:
            retry_in = 0.0
            if self.state == OPEN:
                retry_in = max(0.0, self.recovery_timeout - (time.monotonic() - self.opened_at))
            return {
                "name": self.name,
                "state": self.state,
                "failures": self.failures,
                "threshold": self.failure_threshold,
                "retry_in_seconds": round(retry_in, 1),
            }


sendgrid_circuit = CircuitBreaker(name="sendgrid", failure_threshold=3, recovery_timeout=60)
