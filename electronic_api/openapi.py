"""
OpenAPI document generation with bearer authentication metadata.
"""

from typing import Any, Dict

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from electronic_api.config import Settings
from electronic_api.dependencies import BEARER_DESCRIPTION, BEARER_SCHEME_NAME

API_DESCRIPTION = (
    "Backend for an electronics store: catalog, cart, orders, payments and "
    "user accounts. Authenticate with POST /api/auth/login and send the "
    "returned token as 'Authorization: Bearer <token>'."
)


def bearer_security_scheme() -> Dict[str, Any]:
    return {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
        "description": BEARER_DESCRIPTION,
    }


def install_openapi(app: FastAPI, settings: Settings) -> None:
    """
    Replace app.openapi with a generator that declares the Bearer scheme.

    The document is titled with the application name, versioned with
    docs_version and carries a global security requirement on the scheme.
    """
    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = get_openapi(
            title=settings.app_name,
            version=settings.docs_version,
            description=API_DESCRIPTION,
            routes=app.routes,
        )
        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {})[BEARER_SCHEME_NAME] = bearer_security_scheme()
        schema["security"] = [{BEARER_SCHEME_NAME: []}]

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi
