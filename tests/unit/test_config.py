"""
Unit tests for configuration loading.

Tests cover:
- Required values and the order in which missing values are reported
- appsettings.json / appsettings.{Environment}.json layering
- Section overrides from environment variables
- Derived values (images path, environment flags)
"""

import re

import pytest
from pydantic import ValidationError

from electronic_api.config import load_settings
from electronic_api.exceptions import ConfigurationError
from tests.conftest import JWT_KEY, base_appsettings, write_appsettings


def _load(tmp_path, data, **overrides):
    write_appsettings(tmp_path, data)
    return load_settings(content_root=tmp_path, **overrides)


def _expect_error(tmp_path, data, message):
    with pytest.raises(ConfigurationError, match=re.escape(message)):
        _load(tmp_path, data)


# ============================================================================
# REQUIRED SETTINGS
# ============================================================================


class TestRequiredSettings:
    """Startup fails fast when required configuration is absent."""

    def test_valid_configuration_loads(self, tmp_path):
        settings = _load(tmp_path, base_appsettings(tmp_path))

        assert settings.jwt_settings.key == JWT_KEY
        assert settings.jwt_settings.expiry_minutes == 60
        assert settings.jwt_settings.clock_skew_seconds == 5
        assert settings.database_url.startswith("sqlite+aiosqlite:///")

    def test_missing_appsettings_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(content_root=tmp_path)

        assert str(exc_info.value) == "The configuration file 'appsettings.json' was not found."

    def test_missing_connection_string(self, tmp_path):
        data = base_appsettings(tmp_path)
        del data["ConnectionStrings"]

        _expect_error(tmp_path, data, "Connection string 'DefaultConnection' not found.")

    def test_blank_connection_string_counts_as_missing(self, tmp_path):
        data = base_appsettings(tmp_path)
        data["ConnectionStrings"]["DefaultConnection"] = "   "

        _expect_error(tmp_path, data, "Connection string 'DefaultConnection' not found.")

    def test_missing_jwt_key(self, tmp_path):
        data = base_appsettings(tmp_path)
        del data["JwtSettings"]["Key"]

        _expect_error(tmp_path, data, "JWT Key is missing.")

    def test_short_jwt_key(self, tmp_path):
        data = base_appsettings(tmp_path)
        data["JwtSettings"]["Key"] = "x" * 31

        _expect_error(tmp_path, data, "JWT Key must be at least 32 characters long.")

    def test_jwt_key_of_exactly_32_characters_is_accepted(self, tmp_path):
        data = base_appsettings(tmp_path)
        data["JwtSettings"]["Key"] = "k" * 32

        assert len(_load(tmp_path, data).jwt_settings.key) == 32

    def test_missing_issuer(self, tmp_path):
        data = base_appsettings(tmp_path)
        data["JwtSettings"]["Issuer"] = ""

        _expect_error(tmp_path, data, "JWT Issuer is missing.")

    def test_missing_audience(self, tmp_path):
        data = base_appsettings(tmp_path)
        del data["JwtSettings"]["Audience"]

        _expect_error(tmp_path, data, "JWT Audience is missing.")

    def test_connection_string_reported_before_jwt_problems(self, tmp_path):
        data = {"JwtSettings": {}}

        _expect_error(tmp_path, data, "Connection string 'DefaultConnection' not found.")

    def test_invalid_json_is_a_configuration_error(self, tmp_path):
        (tmp_path / "appsettings.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="appsettings.json"):
            load_settings(content_root=tmp_path)

    def test_unsupported_algorithm_rejected(self, tmp_path):
        data = base_appsettings(tmp_path)
        data["JwtSettings"]["Algorithm"] = "RS256"

        with pytest.raises(ConfigurationError, match="Algorithm"):
            _load(tmp_path, data)


# ============================================================================
# LAYERING
# ============================================================================


class TestConfigurationLayering:
    """Environment files and variables override appsettings.json."""

    def test_environment_file_overrides_single_keys(self, tmp_path):
        write_appsettings(
            tmp_path,
            {"JwtSettings": {"Issuer": "https://dev.store.test"}},
            name="appsettings.Development.json",
        )

        settings = _load(tmp_path, base_appsettings(tmp_path), environment="development")

        assert settings.jwt_settings.issuer == "https://dev.store.test"
        assert settings.jwt_settings.key == JWT_KEY

    def test_environment_file_ignored_for_other_environments(self, tmp_path):
        write_appsettings(
            tmp_path,
            {"JwtSettings": {"Issuer": "https://dev.store.test"}},
            name="appsettings.Development.json",
        )

        settings = _load(tmp_path, base_appsettings(tmp_path), environment="production")

        assert settings.jwt_settings.issuer == "https://store.test"

    def test_dotenv_environment_selects_environment_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("ELECTRONIC_API_ENVIRONMENT=staging\n", encoding="utf-8")
        write_appsettings(
            tmp_path,
            {"JwtSettings": {"Issuer": "https://staging.store.test"}},
            name="appsettings.Staging.json",
        )

        settings = _load(tmp_path, base_appsettings(tmp_path))

        assert settings.environment == "staging"
        assert settings.jwt_settings.issuer == "https://staging.store.test"

    def test_section_environment_variable_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JWTSETTINGS__ISSUER", "https://env.store.test")
        monkeypatch.setenv("Identity__Lockout__MaxFailedAccessAttempts", "3")

        settings = _load(tmp_path, base_appsettings(tmp_path))

        assert settings.jwt_settings.issuer == "https://env.store.test"
        assert settings.identity.lockout.max_failed_access_attempts == 3

    def test_section_environment_variable_supplies_missing_value(self, tmp_path, monkeypatch):
        data = base_appsettings(tmp_path)
        del data["ConnectionStrings"]
        monkeypatch.setenv("ConnectionStrings__DefaultConnection", "sqlite+aiosqlite:///env.db")

        settings = _load(tmp_path, data)

        assert settings.database_url == "sqlite+aiosqlite:///env.db"

    def test_prefixed_environment_variable_sets_plain_field(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ELECTRONIC_API_LOG_LEVEL", "debug")

        settings = _load(tmp_path, base_appsettings(tmp_path))

        assert settings.log_level == "DEBUG"

    def test_keyword_arguments_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ELECTRONIC_API_LOG_LEVEL", "debug")

        settings = _load(tmp_path, base_appsettings(tmp_path), log_level="ERROR")

        assert settings.log_level == "ERROR"


# ============================================================================
# DERIVED VALUES
# ============================================================================


class TestDerivedValues:

    def test_images_path_under_content_root(self, tmp_path):
        settings = _load(tmp_path, base_appsettings(tmp_path))

        assert settings.images_path == tmp_path / "App_Data" / "Images"

    def test_default_environment_is_production(self, tmp_path):
        settings = _load(tmp_path, base_appsettings(tmp_path))

        assert settings.is_production
        assert not settings.is_development

    def test_environment_is_case_insensitive(self, tmp_path):
        settings = _load(tmp_path, base_appsettings(tmp_path), environment="Development")

        assert settings.environment == "development"
        assert settings.is_development

    def test_settings_are_frozen(self, tmp_path):
        settings = _load(tmp_path, base_appsettings(tmp_path))

        with pytest.raises(ValidationError):
            settings.environment = "development"

    def test_url_prefixes_normalized(self, tmp_path):
        settings = _load(tmp_path, base_appsettings(tmp_path), images_request_path="media/")

        assert settings.images_request_path == "/media"

    def test_identity_defaults(self, tmp_path):
        identity = _load(tmp_path, base_appsettings(tmp_path)).identity

        assert identity.password.required_length == 8
        assert identity.password.require_digit
        assert identity.password.require_uppercase
        assert identity.password.require_lowercase
        assert not identity.password.require_non_alphanumeric
        assert identity.lockout.max_failed_access_attempts == 5
        assert identity.lockout.default_lockout_minutes == 5
        assert identity.default_roles == ("Admin", "Customer")
