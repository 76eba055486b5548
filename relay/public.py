"""
Static hosting for the tracker front end.

Serves PUBLIC_DIR with an hour of browser caching. A path without an
extension also resolves to ``<path>.html``, and any other miss from a browser
navigation (``Accept: text/html``) gets ``index.html`` so client-side routes
load the app.
"""

from pathlib import PurePosixPath

from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException
from starlette.types import Scope

from contracts.constants import STATIC_MAX_AGE_SECONDS


class PublicFiles(StaticFiles):
    """``StaticFiles`` with extension resolution, an SPA fallback and Cache-Control."""

    def __init__(self, *, directory, max_age: int = STATIC_MAX_AGE_SECONDS):
        super().__init__(directory=directory, html=True)
        self.max_age = max_age

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            response = await super().get_response(path, scope)
        except HTTPException as exc:
            if exc.status_code != 404:
                raise
            response = await self._fallback(path, scope, exc)

        if response.status_code < 400:
            response.headers["Cache-Control"] = f"public, max-age={self.max_age}"
        return response

    async def _fallback(self, path: str, scope: Scope, not_found: HTTPException) -> Response:
        if path != "." and not PurePosixPath(path).suffix:
            try:
                return await super().get_response(f"{path}.html", scope)
            except HTTPException as exc:
                if exc.status_code != 404:
                    raise

        if "text/html" in Headers(scope=scope).get("accept", ""):
            return await super().get_response("index.html", scope)
        raise not_found
