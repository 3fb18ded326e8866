"""
Login throttle configuration options

Operator-facing description of every recognized option: id, label, data
type, default and help text, in display order. The option ids are the keys
read from a ConfigSource and the aliases on ThrottleSettings.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class ConfigOption:
    id: str
    label: str
    data_type: str
    default: Any
    description: str = ""
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


MAX_ATTEMPTS = "MaxNumberOfFailedAttempts"
THROTTLE_MINUTES = "ThrottleMinutes"
SEND_EMAIL = "SendEmailOnExcessiveLoginFailures"
ALERT_WINDOW_HOURS = "FailedLoginAttemptsHourEmailWindow"
ALERT_THRESHOLD = "NumberOfFailedLoginAttemptsBeforeEmail"
EMAIL_ADDRESSES = "EmailAddresses"


CONFIGURATION_OPTIONS: Tuple[ConfigOption, ...] = (
    ConfigOption(
        id=MAX_ATTEMPTS,
        label="Maximum number of attempts before throttling",
        data_type="int",
        default=10,
        description="After this number of attempts, the offending IP will not be allowed to log in anymore.",
        order=0,
    ),
    ConfigOption(
        id=THROTTLE_MINUTES,
        label="Minutes to throttle",
        data_type="int",
        default=10,
        description="The number of minutes to throttle/block this IP from attempting to log in.",
        order=1,
    ),
    ConfigOption(
        id=SEND_EMAIL,
        label="Send Email",
        data_type="bool",
        default=True,
        description="Send email if there is an excessive number of login failures.",
        order=2,
    ),
    ConfigOption(
        id=ALERT_WINDOW_HOURS,
        label="Hour(s) window for emailing failed logins",
        data_type="int",
        default=12,
        description=(
            "The window of hours to evaluate for the number of failed attempts before sending email. "
            "If the configured number of failures happen in this window, an email will be sent."
        ),
        order=3,
    ),
    ConfigOption(
        id=ALERT_THRESHOLD,
        label="Number of failed login attempts before sending email",
        data_type="int",
        default=50,
        description="The number of failed attempts that must occur within the window before an email is sent.",
        order=4,
    ),
    ConfigOption(
        id=EMAIL_ADDRESSES,
        label="Email addresses (separated by semicolons). Ex. 'admin@localhost.com;another@localhost.com'",
        data_type="string",
        default="",
        order=5,
    ),
)


def get_option(option_id: str) -> ConfigOption:
    """Look up an option by id (KeyError if unknown)"""
    for option in CONFIGURATION_OPTIONS:
        if option.id == option_id:
            return option
    raise KeyError(option_id)


def list_options() -> List[Dict[str, Any]]:
    """Options as plain dicts, in display order"""
    return [option.to_dict() for option in sorted(CONFIGURATION_OPTIONS, key=lambda o: o.order)]
