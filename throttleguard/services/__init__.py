"""Login throttle engine"""
from .login_throttle import AttemptSummary, ThrottleStore, UNKNOWN_SOURCE
from .failure_log import FailureLog, FailureLogEntry
from .throttle_service import ThrottleService

__all__ = [
    'AttemptSummary',
    'ThrottleStore',
    'UNKNOWN_SOURCE',
    'FailureLog',
    'FailureLogEntry',
    'ThrottleService',
]
