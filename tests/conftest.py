"""
Shared fixtures for the store API test suite.

Every test gets its own content root (tmp_path) holding appsettings.json,
a SQLite database file and the App_Data/Images directory.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from electronic_api.config import Settings, clear_settings_cache, load_settings
from electronic_api.main import create_app
from electronic_api.services.identity_service import IdentityService

JWT_KEY = "test-signing-key-0123456789-abcdefghijklmnop"
JWT_ISSUER = "https://store.test"
JWT_AUDIENCE = "https://store.test/clients"
PASSWORD = "Passw0rdX"


def write_appsettings(directory: Path, data: Dict[str, Any], name: str = "appsettings.json") -> Path:
    path = directory / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def base_appsettings(directory: Path) -> Dict[str, Any]:
    return {
        "ConnectionStrings": {
            "DefaultConnection": f"sqlite+aiosqlite:///{directory / 'store.db'}"
        },
        "JwtSettings": {
            "Key": JWT_KEY,
            "Issuer": JWT_ISSUER,
            "Audience": JWT_AUDIENCE,
        },
    }


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# PYTEST FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep host environment variables and cached settings out of tests."""
    for name in (
        "ELECTRONIC_API_ENVIRONMENT",
        "ELECTRONIC_API_CONTENT_ROOT",
        "ConnectionStrings__DefaultConnection",
        "JwtSettings__Key",
        "JwtSettings__Issuer",
        "JwtSettings__Audience",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def content_root(tmp_path, monkeypatch) -> Path:
    """Content root with a valid appsettings.json; also the working directory."""
    write_appsettings(tmp_path, base_appsettings(tmp_path))
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def make_settings(content_root) -> Callable[..., Settings]:
    """Build settings for the test content root; keyword arguments override."""
    def factory(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "content_root": content_root,
            "environment": "development",
            "database_create_schema": True,
            "password_bcrypt_rounds": 4,
            "rate_limit_enabled": False,
            "log_level": "WARNING",
            "log_format": "text",
        }
        values.update(overrides)
        return load_settings(**values)

    return factory


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# USER HELPERS
# ============================================================================


def register(client: TestClient, user_name: str, password: str = PASSWORD, email: Optional[str] = None):
    return client.post(
        "/api/auth/register",
        json={
            "user_name": user_name,
            "email": email or f"{user_name}@example.com",
            "password": password,
        },
    )


def login(client: TestClient, user_name: str, password: str = PASSWORD):
    return client.post("/api/auth/login", json={"user_name": user_name, "password": password})


def grant_role(client: TestClient, user_name: str, role: str) -> None:
    """Add a role directly through the identity service on the app's event loop."""
    app = client.app

    async def _grant() -> None:
        async with app.state.database.session() as session:
            identity = IdentityService(
                session,
                app.state.settings.identity,
                app.state.password_hasher,
                app.state.jwt_service,
            )
            user = await identity.find_by_name(user_name)
            await identity.add_to_role(user, role)

    client.portal.call(_grant)


@pytest.fixture
def customer_token(client) -> str:
    assert register(client, "customer").status_code == 201
    response = login(client, "customer")
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture
def admin_token(client) -> str:
    assert register(client, "admin").status_code == 201
    grant_role(client, "admin", "Admin")
    response = login(client, "admin")
    assert response.status_code == 200
    return response.json()["access_token"]
