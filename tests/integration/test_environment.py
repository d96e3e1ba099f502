"""
Integration tests for environment-dependent pipeline behavior.

Tests cover:
- HTTPS redirection and HSTS in production
- API documentation served only in development
- Security and correlation headers
- Health, readiness and metrics endpoints
- Startup role seeding
"""

import pytest
from fastapi.testclient import TestClient

from electronic_api.main import create_app
from tests.conftest import auth_headers, login, register


@pytest.fixture
def production_app(make_settings):
    return create_app(make_settings(environment="production"))


# ============================================================================
# PRODUCTION
# ============================================================================


class TestProduction:

    def test_http_redirected_to_https(self, production_app):
        with TestClient(production_app) as client:
            response = client.get("/api/categories", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "https://testserver/api/categories"

    def test_https_request_served_with_hsts(self, production_app):
        with TestClient(production_app, base_url="https://testserver") as client:
            response = client.get("/api/categories")

        assert response.status_code == 200
        assert response.headers["Strict-Transport-Security"] == "max-age=31536000; includeSubDomains"

    def test_docs_not_served(self, production_app):
        with TestClient(production_app, base_url="https://testserver") as client:
            assert client.get("/swagger").status_code == 404
            assert client.get("/swagger/v1/swagger.json").status_code == 404
            assert client.get("/openapi.json").status_code == 404

    def test_images_served_before_redirect(self, production_app, settings):
        (settings.images_path / "logo.png").write_bytes(b"png-bytes")

        with TestClient(production_app) as client:
            response = client.get("/images/logo.png", follow_redirects=False)

        assert response.status_code == 200
        assert response.content == b"png-bytes"

    def test_full_flow_over_https(self, production_app):
        with TestClient(production_app, base_url="https://testserver") as client:
            assert register(client, "alice").status_code == 201
            token = login(client, "alice").json()["access_token"]
            me = client.get("/api/auth/me", headers=auth_headers(token))

        assert me.json()["user_name"] == "alice"


# ============================================================================
# DEVELOPMENT
# ============================================================================


class TestDevelopment:

    def test_no_https_redirect_or_hsts(self, client):
        response = client.get("/api/categories", follow_redirects=False)

        assert response.status_code == 200
        assert "Strict-Transport-Security" not in response.headers

    def test_swagger_ui_served(self, client):
        response = client.get("/swagger")

        assert response.status_code == 200
        assert "/swagger/v1/swagger.json" in response.text

    def test_openapi_document_served(self, client):
        response = client.get("/swagger/v1/swagger.json")

        assert response.status_code == 200
        assert response.json()["info"]["version"] == "v1"

    def test_pipeline_recorded_on_app_state(self, app):
        assert app.state.pipeline[0] == "request_logging"
        assert app.state.pipeline[-1] == "controllers"


# ============================================================================
# COMMON HEADERS
# ============================================================================


class TestHeaders:

    def test_security_headers(self, client):
        response = client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})

        assert response.headers["X-Correlation-ID"] == "abc-123"

    def test_correlation_id_generated(self, client):
        response = client.get("/health")

        assert response.headers["X-Correlation-ID"]

    def test_cors_preflight_when_enabled(self, make_settings):
        app = create_app(make_settings(cors_enabled=True, cors_origins=["https://shop.test"]))

        with TestClient(app) as client:
            response = client.options(
                "/api/products",
                headers={
                    "Origin": "https://shop.test",
                    "Access-Control-Request-Method": "GET",
                },
            )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://shop.test"


# ============================================================================
# HEALTH AND MONITORING
# ============================================================================


class TestHealth:

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["environment"] == "development"

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "healthy"}

    def test_metrics(self, client):
        client.get("/health")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_metrics_can_be_disabled(self, make_settings):
        with TestClient(create_app(make_settings(metrics_enabled=False))) as client:
            assert client.get("/metrics").status_code == 404

    def test_unknown_route(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.json()["detail"] == "Not Found"


# ============================================================================
# STARTUP
# ============================================================================


class TestStartup:

    def test_default_roles_seeded(self, client, admin_token):
        me = client.get("/api/auth/me", headers=auth_headers(admin_token)).json()

        assert me["roles"] == ["Admin", "Customer"]

    def test_restart_keeps_existing_data(self, make_settings):
        settings = make_settings()
        with TestClient(create_app(settings)) as client:
            register(client, "alice")

        with TestClient(create_app(settings)) as client:
            assert login(client, "alice").status_code == 200
