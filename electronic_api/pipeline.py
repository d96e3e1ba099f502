"""
Request pipeline assembly.

The pipeline is an explicit ordered list of stages. Each stage contributes
middleware (outermost first), FastAPI constructor options, and/or a hook
that configures the built application. Stages that do not apply to the
current settings are left out of the list entirely.

Order:
    request_logging, security_headers, cors, swagger, static_files,
    https_redirection, authentication, authorization, controllers
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from fastapi import FastAPI
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

from electronic_api.config import Settings
from electronic_api.middleware import (
    AuthenticationMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    StaticFilesMiddleware,
)
from electronic_api.openapi import install_openapi
from electronic_api.routers import include_routers
from electronic_api.services.jwt_service import JwtService

logger = structlog.get_logger(__name__)

SWAGGER_UI_PATH = "/swagger"
SWAGGER_DOCUMENT_PATH = "/swagger/v1/swagger.json"


@dataclass(frozen=True)
class PipelineStage:
    """One step of the request pipeline."""
    name: str
    middleware: Tuple[Middleware, ...] = ()
    app_options: Dict[str, Any] = field(default_factory=dict)
    configure: Optional[Callable[[FastAPI], None]] = None


def build_pipeline(settings: Settings, jwt_service: JwtService) -> List[PipelineStage]:
    """
    Build the ordered pipeline stages for the given settings.

    Args:
        settings: Validated settings
        jwt_service: Token validator used by the authentication stage

    Returns:
        Stages in execution order (first stage sees the request first)
    """
    stages: List[PipelineStage] = [
        PipelineStage(
            name="request_logging",
            middleware=(Middleware(RequestLoggingMiddleware),),
        ),
        PipelineStage(
            name="security_headers",
            middleware=(
                Middleware(
                    SecurityHeadersMiddleware,
                    enabled=settings.security_headers_enabled,
                    hsts_max_age=settings.security_hsts_max_age if settings.is_production else 0,
                ),
            ),
        ),
    ]

    if settings.cors_enabled:
        stages.append(PipelineStage(
            name="cors",
            middleware=(
                Middleware(
                    CORSMiddleware,
                    allow_origins=settings.cors_origins,
                    allow_credentials=settings.cors_allow_credentials,
                    allow_methods=["*"],
                    allow_headers=["*"],
                ),
            ),
        ))

    if settings.is_development:
        stages.append(PipelineStage(
            name="swagger",
            app_options={
                "docs_url": SWAGGER_UI_PATH,
                "openapi_url": SWAGGER_DOCUMENT_PATH,
            },
            configure=lambda app: install_openapi(app, settings),
        ))

    stages.append(PipelineStage(
        name="static_files",
        middleware=(
            Middleware(
                StaticFilesMiddleware,
                directory=settings.images_path,
                request_path=settings.images_request_path,
            ),
        ),
    ))

    if settings.is_production:
        stages.append(PipelineStage(
            name="https_redirection",
            middleware=(Middleware(HTTPSRedirectMiddleware),),
        ))

    stages.extend([
        PipelineStage(
            name="authentication",
            middleware=(Middleware(AuthenticationMiddleware, jwt_service=jwt_service),),
        ),
        # Enforced per endpoint by the require_user / require_roles dependencies.
        PipelineStage(name="authorization"),
        PipelineStage(
            name="controllers",
            configure=lambda app: include_routers(app, settings),
        ),
    ])

    logger.info(
        "pipeline_built",
        stages=[stage.name for stage in stages],
        environment=settings.environment
    )
    return stages


def collect_middleware(stages: List[PipelineStage]) -> List[Middleware]:
    return [mw for stage in stages for mw in stage.middleware]


def collect_app_options(stages: List[PipelineStage]) -> Dict[str, Any]:
    # Documentation stays off unless a stage turns it on.
    options: Dict[str, Any] = {"docs_url": None, "redoc_url": None, "openapi_url": None}
    for stage in stages:
        options.update(stage.app_options)
    return options


def apply_stage_hooks(app: FastAPI, stages: List[PipelineStage]) -> None:
    for stage in stages:
        if stage.configure is not None:
            stage.configure(app)
