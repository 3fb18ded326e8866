"""
Configuration Loader - Loads and normalizes login throttle settings

Usage:
    from config.loader import YamlConfigSource, load_settings

    settings = load_settings(YamlConfigSource('config/login_throttle.yaml'))
    print(settings.max_attempts)
    print(settings.throttle_duration)

Settings are never rejected. A value that is missing, unparseable or out of
range is replaced by the option's documented default, so a bad edit to the
config file can't take the login page down.
"""

import os
import re
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.options import (
    CONFIGURATION_OPTIONS,
    MAX_ATTEMPTS,
    THROTTLE_MINUTES,
    SEND_EMAIL,
    ALERT_WINDOW_HOURS,
    ALERT_THRESHOLD,
    EMAIL_ADDRESSES,
    get_option,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "login_throttle.yaml"
CONFIG_SECTION = "login_throttle"

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def _coerce_int(value: Any, default: int, minimum: int) -> int:
    """int(value) if it parses and is >= minimum, else default"""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(value.strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= minimum else default


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return default


def parse_recipients(value: Any) -> Tuple[str, ...]:
    """
    Split a semicolon-delimited address list.

    Each address is trimmed and empty entries are dropped. A list of
    addresses (or of semicolon-delimited strings) is accepted as well.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        chunks: Iterable[Any] = [value]
    elif isinstance(value, (list, tuple, set)):
        chunks = value
    else:
        return ()

    addresses = []
    for chunk in chunks:
        for part in str(chunk).split(';'):
            address = part.strip()
            if address:
                addresses.append(address)
    return tuple(addresses)


class ThrottleSettings(BaseModel):
    """Tunable thresholds for the login throttle and the failure alert.

    Fields accept either their Python name or their option id
    (e.g. ``MaxNumberOfFailedAttempts``). Instances are immutable; replace
    the whole object to change configuration.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    max_attempts: int = Field(default=get_option(MAX_ATTEMPTS).default, alias=MAX_ATTEMPTS)
    throttle_minutes: int = Field(default=get_option(THROTTLE_MINUTES).default, alias=THROTTLE_MINUTES)
    alert_enabled: bool = Field(default=get_option(SEND_EMAIL).default, alias=SEND_EMAIL)
    alert_window_hours: int = Field(default=get_option(ALERT_WINDOW_HOURS).default, alias=ALERT_WINDOW_HOURS)
    alert_threshold: int = Field(default=get_option(ALERT_THRESHOLD).default, alias=ALERT_THRESHOLD)
    alert_recipients: Tuple[str, ...] = Field(default=(), alias=EMAIL_ADDRESSES)

    @field_validator('max_attempts', mode='before')
    @classmethod
    def _normalize_max_attempts(cls, value: Any) -> int:
        return _coerce_int(value, get_option(MAX_ATTEMPTS).default, minimum=0)

    @field_validator('throttle_minutes', mode='before')
    @classmethod
    def _normalize_throttle_minutes(cls, value: Any) -> int:
        return _coerce_int(value, get_option(THROTTLE_MINUTES).default, minimum=1)

    @field_validator('alert_enabled', mode='before')
    @classmethod
    def _normalize_alert_enabled(cls, value: Any) -> bool:
        return _coerce_bool(value, get_option(SEND_EMAIL).default)

    @field_validator('alert_window_hours', mode='before')
    @classmethod
    def _normalize_alert_window_hours(cls, value: Any) -> int:
        return _coerce_int(value, get_option(ALERT_WINDOW_HOURS).default, minimum=1)

    @field_validator('alert_threshold', mode='before')
    @classmethod
    def _normalize_alert_threshold(cls, value: Any) -> int:
        return _coerce_int(value, get_option(ALERT_THRESHOLD).default, minimum=0)

    @field_validator('alert_recipients', mode='before')
    @classmethod
    def _normalize_alert_recipients(cls, value: Any) -> Tuple[str, ...]:
        return parse_recipients(value)

    # ==================== Derived Values ====================

    @property
    def throttle_duration(self) -> timedelta:
        """How long a source stays blocked once throttled"""
        return timedelta(minutes=self.throttle_minutes)

    @property
    def alert_window(self) -> timedelta:
        """Retention horizon of the failure log"""
        return timedelta(hours=self.alert_window_hours)

    def to_options(self) -> Dict[str, Any]:
        """Settings keyed by option id, addresses joined back with ';'"""
        return {
            MAX_ATTEMPTS: self.max_attempts,
            THROTTLE_MINUTES: self.throttle_minutes,
            SEND_EMAIL: self.alert_enabled,
            ALERT_WINDOW_HOURS: self.alert_window_hours,
            ALERT_THRESHOLD: self.alert_threshold,
            EMAIL_ADDRESSES: ";".join(self.alert_recipients),
        }

    def merged(self, updates: Mapping[str, Any]) -> "ThrottleSettings":
        """
        New settings with ``updates`` (keyed by option id) applied on top.

        Raises:
            ValueError: if an update names an unknown option
        """
        known = {option.id for option in CONFIGURATION_OPTIONS}
        unknown = sorted(set(updates) - known)
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {', '.join(unknown)}")

        values = self.to_options()
        values.update(updates)
        return ThrottleSettings.model_validate(values)


# ==================== Config Sources ====================

class ConfigSource(Protocol):
    """Anything that can hand out a raw option value by option id"""

    def get(self, key: str) -> Optional[Any]:
        ...


class DictConfigSource:
    """Config source backed by an in-memory mapping"""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values = dict(values or {})

    def get(self, key: str) -> Optional[Any]:
        return self._values.get(key)


class YamlConfigSource:
    """
    Config source backed by a YAML file.

    Reads the ``login_throttle:`` section (or the whole document when the
    section is absent) and substitutes ``${VAR}`` / ``${VAR:-default}``
    from the environment.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else DEFAULT_CONFIG_PATH
        self._values = self._load()

    def get(self, key: str) -> Optional[Any]:
        return self._values.get(key)

    def reload(self) -> None:
        """Re-read the file"""
        self._values = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.warning(f"Login throttle config not found: {self.path}, using defaults")
            return {}

        try:
            with open(self.path, 'r') as f:
                document = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML in {self.path}, using defaults: {e}")
            return {}

        if not isinstance(document, dict):
            logger.error(f"Expected a mapping in {self.path}, using defaults")
            return {}

        section = document.get(CONFIG_SECTION, document)
        if not isinstance(section, dict):
            logger.error(f"'{CONFIG_SECTION}' in {self.path} is not a mapping, using defaults")
            return {}

        return _substitute_env_vars(section)


def _substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in config

    Supports: ${VAR_NAME} or ${VAR_NAME:-default_value}
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        pattern = r'\$\{([A-Z0-9_]+)(?::-([^}]*))?\}'

        def replacer(match):
            var_name = match.group(1)
            default = match.group(2)
            return os.getenv(var_name, default or '')

        return re.sub(pattern, replacer, obj)
    else:
        return obj


def load_settings(source: Optional[ConfigSource] = None) -> ThrottleSettings:
    """
    Build ThrottleSettings from a config source.

    Args:
        source: ConfigSource to read (defaults to the bundled YAML file,
                or the file named by LOGIN_THROTTLE_CONFIG)
    """
    if source is None:
        source = YamlConfigSource(os.getenv("LOGIN_THROTTLE_CONFIG"))

    values = {}
    for option in CONFIGURATION_OPTIONS:
        value = source.get(option.id)
        if value is not None:
            values[option.id] = value

    settings = ThrottleSettings.model_validate(values)
    logger.debug(f"Loaded login throttle settings: {settings.to_options()}")
    return settings
