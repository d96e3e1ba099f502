"""
Unit tests for the process entry points.

Tests cover:
- create_app() loading configuration itself and failing fast
- main() exiting with status 1 before the server starts
"""

import pytest
import uvicorn

from electronic_api.exceptions import ConfigurationError
from electronic_api.main import create_app, main
from tests.conftest import base_appsettings, write_appsettings


@pytest.fixture
def short_key_root(content_root):
    data = base_appsettings(content_root)
    data["JwtSettings"]["Key"] = "too-short"
    write_appsettings(content_root, data)
    return content_root


@pytest.fixture
def serve_forbidden(monkeypatch):
    def serve(*args, **kwargs):
        pytest.fail("uvicorn.run was reached with an invalid configuration")

    monkeypatch.setattr(uvicorn, "run", serve)


# ============================================================================
# FAIL-FAST STARTUP
# ============================================================================


class TestFailFastStartup:
    """Invalid configuration stops the process before the server binds."""

    def test_create_app_without_settings_rejects_short_key(self, short_key_root):
        with pytest.raises(ConfigurationError, match="JWT Key must be at least 32 characters long."):
            create_app()

    def test_main_exits_with_status_one(self, short_key_root, serve_forbidden):
        with pytest.raises(SystemExit) as excinfo:
            main()

        assert excinfo.value.code == 1

    def test_main_exits_without_appsettings(self, tmp_path, monkeypatch, serve_forbidden):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(SystemExit) as excinfo:
            main()

        assert excinfo.value.code == 1

    def test_main_runs_server_with_valid_configuration(self, content_root, monkeypatch):
        calls = []
        monkeypatch.setattr(uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))

        main()

        assert len(calls) == 1
        args, kwargs = calls[0]
        assert args == ("electronic_api.main:create_app",)
        assert kwargs["factory"] is True
