"""
Static file serving for product images.

Runs ahead of authentication, so image URLs are public. Files are looked
up with Starlette's StaticFiles, which refuses paths that resolve outside
the served directory. Anything not found falls through to the rest of the
application and ends as a normal 404.
"""

import os
from pathlib import Path

import structlog
from starlette.exceptions import HTTPException
from starlette.responses import PlainTextResponse
from starlette.staticfiles import StaticFiles
from starlette.types import ASGIApp, Receive, Scope, Send

logger = structlog.get_logger(__name__)


class StaticFilesMiddleware:
    """Pure ASGI middleware serving `directory` under `request_path`."""

    def __init__(self, app: ASGIApp, directory: Path, request_path: str = "/images"):
        self.app = app
        self.directory = Path(directory)
        self.prefix = request_path.rstrip("/") + "/"
        self.files = StaticFiles(directory=str(self.directory), check_dir=False)

    def _relative_path(self, scope: Scope):
        if scope["type"] != "http" or scope["method"] not in ("GET", "HEAD"):
            return None
        path = scope["path"]
        if not path.startswith(self.prefix):
            return None
        relative = os.path.normpath(path[len(self.prefix):])
        if relative in ("", "."):
            return None
        return relative

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        relative = self._relative_path(scope)
        if relative is None:
            await self.app(scope, receive, send)
            return

        try:
            response = await self.files.get_response(relative, scope)
        except HTTPException as exc:
            if exc.status_code == 404:
                logger.debug("static_file_not_found", path=scope["path"])
                await self.app(scope, receive, send)
                return
            response = PlainTextResponse(str(exc.detail), status_code=exc.status_code)

        if response.status_code == 404:
            await self.app(scope, receive, send)
            return

        await response(scope, receive, send)
