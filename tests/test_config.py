"""
Configuration Loader Unit Tests

Tests for ThrottleSettings normalization, the config sources and
load_settings() in config/loader.py, plus the option metadata in
config/options.py.
"""

import pytest
from datetime import timedelta


class TestThrottleSettingsDefaults:
    """Tests for default values."""

    def test_defaults(self):
        """Defaults match the documented option defaults."""
        from config.loader import ThrottleSettings

        settings = ThrottleSettings()

        assert settings.max_attempts == 10
        assert settings.throttle_minutes == 10
        assert settings.alert_enabled is True
        assert settings.alert_window_hours == 12
        assert settings.alert_threshold == 50
        assert settings.alert_recipients == ()

    def test_derived_durations(self):
        from config.loader import ThrottleSettings

        settings = ThrottleSettings(throttle_minutes=15, alert_window_hours=24)

        assert settings.throttle_duration == timedelta(minutes=15)
        assert settings.alert_window == timedelta(hours=24)

    def test_settings_are_immutable(self):
        from config.loader import ThrottleSettings
        from pydantic import ValidationError

        settings = ThrottleSettings()
        with pytest.raises(ValidationError):
            settings.max_attempts = 3


class TestThrottleSettingsNormalization:
    """Invalid values fall back to defaults instead of raising."""

    @pytest.mark.parametrize("value,expected", [
        ("15", 15),
        (0, 0),
        (-1, 10),
        ("abc", 10),
        ("", 10),
        (None, 10),
        (True, 10),
    ])
    def test_max_attempts(self, value, expected):
        from config.loader import ThrottleSettings

        assert ThrottleSettings(max_attempts=value).max_attempts == expected

    @pytest.mark.parametrize("value,expected", [
        ("30", 30),
        (1, 1),
        (0, 10),
        ("-5", 10),
        ("x", 10),
    ])
    def test_throttle_minutes(self, value, expected):
        from config.loader import ThrottleSettings

        assert ThrottleSettings(throttle_minutes=value).throttle_minutes == expected

    @pytest.mark.parametrize("value,expected", [
        ("24", 24),
        (0, 12),
        ("nope", 12),
    ])
    def test_alert_window_hours(self, value, expected):
        from config.loader import ThrottleSettings

        assert ThrottleSettings(alert_window_hours=value).alert_window_hours == expected

    @pytest.mark.parametrize("value,expected", [
        ("0", 0),
        (-3, 50),
        ("many", 50),
    ])
    def test_alert_threshold(self, value, expected):
        from config.loader import ThrottleSettings

        assert ThrottleSettings(alert_threshold=value).alert_threshold == expected

    @pytest.mark.parametrize("value,expected", [
        ("true", True),
        ("False", False),
        ("0", False),
        ("yes", True),
        ("maybe", True),
        (False, False),
    ])
    def test_alert_enabled(self, value, expected):
        from config.loader import ThrottleSettings

        assert ThrottleSettings(alert_enabled=value).alert_enabled is expected

    def test_recipients_split_and_trimmed(self):
        """Addresses are split on ';', trimmed, and empty entries dropped."""
        from config.loader import ThrottleSettings

        settings = ThrottleSettings(alert_recipients=" a@example.com ;; b@example.com; ")

        assert settings.alert_recipients == ("a@example.com", "b@example.com")

    def test_recipients_from_list(self):
        from config.loader import ThrottleSettings

        settings = ThrottleSettings(alert_recipients=["a@example.com", "b@example.com;c@example.com"])

        assert settings.alert_recipients == ("a@example.com", "b@example.com", "c@example.com")

    def test_option_id_aliases(self):
        from config.loader import ThrottleSettings

        settings = ThrottleSettings.model_validate({
            "MaxNumberOfFailedAttempts": "3",
            "ThrottleMinutes": "7",
            "SendEmailOnExcessiveLoginFailures": "false",
            "EmailAddresses": "x@example.com",
        })

        assert settings.max_attempts == 3
        assert settings.throttle_minutes == 7
        assert settings.alert_enabled is False
        assert settings.alert_recipients == ("x@example.com",)


class TestOptionsRoundTrip:
    """Tests for to_options() and merged()."""

    def test_to_options_keyed_by_id(self):
        from config.loader import ThrottleSettings

        options = ThrottleSettings(alert_recipients="a@example.com;b@example.com").to_options()

        assert options == {
            "MaxNumberOfFailedAttempts": 10,
            "ThrottleMinutes": 10,
            "SendEmailOnExcessiveLoginFailures": True,
            "FailedLoginAttemptsHourEmailWindow": 12,
            "NumberOfFailedLoginAttemptsBeforeEmail": 50,
            "EmailAddresses": "a@example.com;b@example.com",
        }

    def test_merged_applies_updates(self):
        from config.loader import ThrottleSettings

        original = ThrottleSettings(alert_recipients="a@example.com")
        updated = original.merged({"ThrottleMinutes": 30})

        assert updated.throttle_minutes == 30
        assert updated.alert_recipients == ("a@example.com",)
        assert original.throttle_minutes == 10

    def test_merged_normalizes_invalid_values(self):
        from config.loader import ThrottleSettings

        updated = ThrottleSettings(max_attempts=4).merged({"MaxNumberOfFailedAttempts": -2})

        assert updated.max_attempts == 10

    def test_merged_rejects_unknown_option(self):
        from config.loader import ThrottleSettings

        with pytest.raises(ValueError, match="NotAnOption"):
            ThrottleSettings().merged({"NotAnOption": 1})


class TestDictConfigSource:
    """Tests for DictConfigSource and load_settings()."""

    def test_load_settings_from_dict(self):
        from config.loader import DictConfigSource, load_settings

        settings = load_settings(DictConfigSource({
            "MaxNumberOfFailedAttempts": 15,
            "NumberOfFailedLoginAttemptsBeforeEmail": "100",
        }))

        assert settings.max_attempts == 15
        assert settings.alert_threshold == 100
        assert settings.throttle_minutes == 10

    def test_missing_values_use_defaults(self):
        from config.loader import DictConfigSource, load_settings

        assert load_settings(DictConfigSource()) == load_settings(DictConfigSource({}))
        assert load_settings(DictConfigSource()).max_attempts == 10

    def test_unrelated_keys_ignored(self):
        from config.loader import DictConfigSource, load_settings

        settings = load_settings(DictConfigSource({"SomethingElse": "1"}))

        assert settings.max_attempts == 10


class TestYamlConfigSource:
    """Tests for YamlConfigSource."""

    def test_reads_section(self, tmp_path):
        from config.loader import YamlConfigSource, load_settings

        path = tmp_path / "throttle.yaml"
        path.write_text(
            "login_throttle:\n"
            "  MaxNumberOfFailedAttempts: 4\n"
            "  EmailAddresses: 'a@example.com; b@example.com'\n"
        )

        settings = load_settings(YamlConfigSource(str(path)))

        assert settings.max_attempts == 4
        assert settings.alert_recipients == ("a@example.com", "b@example.com")

    def test_reads_top_level_mapping(self, tmp_path):
        from config.loader import YamlConfigSource

        path = tmp_path / "throttle.yaml"
        path.write_text("ThrottleMinutes: 20\n")

        assert YamlConfigSource(str(path)).get("ThrottleMinutes") == 20

    def test_env_substitution(self, tmp_path, monkeypatch):
        from config.loader import YamlConfigSource, load_settings

        monkeypatch.setenv("TEST_THROTTLE_MINUTES", "25")
        monkeypatch.delenv("TEST_THROTTLE_MAX", raising=False)
        path = tmp_path / "throttle.yaml"
        path.write_text(
            "login_throttle:\n"
            "  ThrottleMinutes: \"${TEST_THROTTLE_MINUTES}\"\n"
            "  MaxNumberOfFailedAttempts: \"${TEST_THROTTLE_MAX:-6}\"\n"
        )

        settings = load_settings(YamlConfigSource(str(path)))

        assert settings.throttle_minutes == 25
        assert settings.max_attempts == 6

    def test_missing_file_uses_defaults(self, tmp_path):
        from config.loader import YamlConfigSource, load_settings

        settings = load_settings(YamlConfigSource(str(tmp_path / "absent.yaml")))

        assert settings.max_attempts == 10

    def test_invalid_yaml_uses_defaults(self, tmp_path):
        from config.loader import YamlConfigSource

        path = tmp_path / "broken.yaml"
        path.write_text("login_throttle: [unclosed\n")

        assert YamlConfigSource(str(path)).get("MaxNumberOfFailedAttempts") is None

    def test_non_mapping_uses_defaults(self, tmp_path):
        from config.loader import YamlConfigSource

        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        assert YamlConfigSource(str(path)).get("ThrottleMinutes") is None

    def test_reload(self, tmp_path):
        from config.loader import YamlConfigSource

        path = tmp_path / "throttle.yaml"
        path.write_text("login_throttle:\n  ThrottleMinutes: 5\n")
        source = YamlConfigSource(str(path))

        path.write_text("login_throttle:\n  ThrottleMinutes: 9\n")
        source.reload()

        assert source.get("ThrottleMinutes") == 9

    def test_bundled_file_defaults(self, monkeypatch):
        """The shipped YAML resolves to the documented defaults with no env set."""
        from config.loader import load_settings

        for var in ("LOGIN_THROTTLE_CONFIG", "LOGIN_THROTTLE_MAX_ATTEMPTS", "LOGIN_THROTTLE_MINUTES",
                    "LOGIN_THROTTLE_SEND_EMAIL", "LOGIN_THROTTLE_ALERT_WINDOW_HOURS",
                    "LOGIN_THROTTLE_ALERT_THRESHOLD", "LOGIN_THROTTLE_ALERT_EMAILS"):
            monkeypatch.delenv(var, raising=False)

        settings = load_settings()

        assert settings.to_options() == {
            "MaxNumberOfFailedAttempts": 10,
            "ThrottleMinutes": 10,
            "SendEmailOnExcessiveLoginFailures": True,
            "FailedLoginAttemptsHourEmailWindow": 12,
            "NumberOfFailedLoginAttemptsBeforeEmail": 50,
            "EmailAddresses": "",
        }

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        from config.loader import load_settings

        path = tmp_path / "throttle.yaml"
        path.write_text("login_throttle:\n  NumberOfFailedLoginAttemptsBeforeEmail: 3\n")
        monkeypatch.setenv("LOGIN_THROTTLE_CONFIG", str(path))

        assert load_settings().alert_threshold == 3


class TestOptions:
    """Tests for config/options.py."""

    def test_list_options_in_display_order(self):
        from config.options import list_options

        options = list_options()

        assert [option["id"] for option in options] == [
            "MaxNumberOfFailedAttempts",
            "ThrottleMinutes",
            "SendEmailOnExcessiveLoginFailures",
            "FailedLoginAttemptsHourEmailWindow",
            "NumberOfFailedLoginAttemptsBeforeEmail",
            "EmailAddresses",
        ]
        assert options[0]["default"] == 10
        assert options[0]["data_type"] == "int"

    def test_get_option_unknown(self):
        from config.options import get_option

        with pytest.raises(KeyError):
            get_option("Missing")

    def test_defaults_agree_with_settings(self):
        from config.loader import ThrottleSettings
        from config.options import CONFIGURATION_OPTIONS

        defaults = ThrottleSettings().to_options()
        for option in CONFIGURATION_OPTIONS:
            assert defaults[option.id] == option.default
