"""HTTP reporting endpoint.

Read-only JSON routes over :mod:`page_complexity.report`::

    GET /page?path=/content/site/en
    GET /pages?rootPath=/content/site&limit=100
    GET /info?path=/content/site/en
    GET /health

``highThreshold`` and ``mediumThreshold`` query parameters override the
default thresholds for the live routes; invalid integers fall back to the
defaults with a warning.

Example::

    curl "http://localhost:8765/page?path=/content/site/en"
"""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Any

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from page_complexity.models import DEFAULT_HIGH_THRESHOLD, DEFAULT_MEDIUM_THRESHOLD
from page_complexity.report import DEFAULT_LIMIT, analyze_page, analyze_pages, page_info
from page_complexity.repository.base import RepositoryFactory

logger = logging.getLogger(__name__)


def _int_param(request: Request, name: str, default: int) -> int:
    value = request.query_params.get(name)
    if value:
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer parameter %s: %s", name, value)
    return default


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status)


def _version() -> str:
    try:
        return importlib.metadata.version("page-complexity")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def create_app(factory: RepositoryFactory) -> Starlette:
    """Build the reporting app over a repository session factory."""

    def _with_session(fn, *args: Any) -> Any:
        session = factory.open_session()
        try:
            return fn(session, *args)
        finally:
            session.close()

    async def page(request: Request) -> JSONResponse:
        path = request.query_params.get("path")
        if not path:
            return _error(400, "Missing required parameter: 'path'")
        high = _int_param(request, "highThreshold", DEFAULT_HIGH_THRESHOLD)
        medium = _int_param(request, "mediumThreshold", DEFAULT_MEDIUM_THRESHOLD)
        try:
            result = await run_in_threadpool(_with_session, analyze_page, path, high, medium)
        except Exception as e:
            logger.error("Error analyzing page complexity for %s", path, exc_info=True)
            return _error(500, f"Error: {e}")
        if result is None:
            return _error(404, f"Page not found: {path}")
        return JSONResponse(result)

    async def pages(request: Request) -> JSONResponse:
        root_path = request.query_params.get("rootPath")
        if not root_path:
            return _error(400, "Missing required parameter: 'rootPath'")
        limit = _int_param(request, "limit", DEFAULT_LIMIT)
        high = _int_param(request, "highThreshold", DEFAULT_HIGH_THRESHOLD)
        medium = _int_param(request, "mediumThreshold", DEFAULT_MEDIUM_THRESHOLD)
        try:
            result = await run_in_threadpool(
                _with_session, analyze_pages, root_path, limit, high, medium
            )
        except Exception as e:
            logger.error("Error analyzing pages under %s", root_path, exc_info=True)
            return _error(500, f"Error: {e}")
        return JSONResponse(result)

    async def info(request: Request) -> JSONResponse:
        path = request.query_params.get("path")
        if not path:
            return _error(400, "Missing required parameter: 'path'")
        try:
            result = await run_in_threadpool(_with_session, page_info, path)
        except Exception as e:
            logger.error("Error reading page info for %s", path, exc_info=True)
            return _error(500, f"Error: {e}")
        return JSONResponse(result)

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "version": _version()})

    return Starlette(
        routes=[
            Route("/page", page, methods=["GET"]),
            Route("/pages", pages, methods=["GET"]),
            Route("/info", info, methods=["GET"]),
            Route("/health", health, methods=["GET"]),
        ]
    )
