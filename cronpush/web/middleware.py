"""Request helpers and middlewares shared by the REST routes."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from cronpush.config import settings
from cronpush.errors import NotFoundError, TransientHandlerError, ValidationError

logger = logging.getLogger(__name__)

_CORS_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
_CORS_HEADERS = "Content-Type, Authorization"


async def read_json(request: web.Request) -> Any:
    """Decode the request body, turning malformed JSON into a ValidationError."""
    try:
        return await request.json()
    except ValueError as exc:
        logger.warning("Bad request: invalid JSON (%s %s)", request.method, request.path)
        msg = "Invalid JSON"
        raise ValidationError(msg) from exc


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Map domain errors to ``{error}`` JSON responses."""
    try:
        return await handler(request)
    except ValidationError as exc:
        return web.json_response({"error": exc.reason}, status=400)
    except NotFoundError as exc:
        return web.json_response({"error": str(exc)}, status=404)
    except TransientHandlerError as exc:
        return web.json_response({"error": str(exc)}, status=500)


def _allowed_origin(request: web.Request) -> str | None:
    origins = settings.get_cors_origins()
    if "*" in origins:
        return "*"
    origin = request.headers.get("Origin")
    return origin if origin in origins else None


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answer preflight requests and add CORS headers for the dashboards."""
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        response = await handler(request)
        # WebSocket and other streamed responses have already sent headers.
        if response.prepared:
            return response

    origin = _allowed_origin(request)
    if origin is not None:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = _CORS_METHODS
        response.headers["Access-Control-Allow-Headers"] = _CORS_HEADERS
    return response
