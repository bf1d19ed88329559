"""REST routes for job management (``/api/cronjobs``)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from aiohttp import web

from cronpush.errors import ValidationError
from cronpush.scheduler.expression import describe, upcoming, validation_error
from cronpush.web.keys import ENGINE_KEY
from cronpush.web.middleware import read_json

logger = logging.getLogger(__name__)


async def list_jobs(request: web.Request) -> web.Response:
    """GET /api/cronjobs"""
    jobs = await request.app[ENGINE_KEY].list_jobs()
    return web.json_response({"cronJobs": [job.to_api() for job in jobs]})


async def get_job(request: web.Request) -> web.Response:
    """GET /api/cronjobs/{id}"""
    job = await request.app[ENGINE_KEY].get_job(request.match_info["id"])
    return web.json_response(job.to_api())


async def create_job(request: web.Request) -> web.Response:
    """POST /api/cronjobs"""
    payload = await read_json(request)
    job = await request.app[ENGINE_KEY].create_job(payload)
    return web.json_response(job.to_api(), status=201)


async def update_job(request: web.Request) -> web.Response:
    """PUT /api/cronjobs/{id}"""
    payload = await read_json(request)
    job = await request.app[ENGINE_KEY].update_job(request.match_info["id"], payload)
    return web.json_response(job.to_api())


async def delete_job(request: web.Request) -> web.Response:
    """DELETE /api/cronjobs/{id}"""
    job = await request.app[ENGINE_KEY].delete_job(request.match_info["id"])
    return web.json_response({"message": f"Job '{job.name}' deleted", "id": job.id})


async def start_job(request: web.Request) -> web.Response:
    """POST /api/cronjobs/{id}/start"""
    job = await request.app[ENGINE_KEY].start_job(request.match_info["id"])
    return web.json_response(job.to_api())


async def stop_job(request: web.Request) -> web.Response:
    """POST /api/cronjobs/{id}/stop"""
    job = await request.app[ENGINE_KEY].stop_job(request.match_info["id"])
    return web.json_response(job.to_api())


async def execute_job(request: web.Request) -> web.Response:
    """POST /api/cronjobs/{id}/execute"""
    job = await request.app[ENGINE_KEY].execute_now(request.match_info["id"])
    return web.json_response({"message": f"Job '{job.name}' executed", "job": job.to_api()})


async def validate_expression(request: web.Request) -> web.Response:
    """POST /api/cronjobs/validate — check an expression and preview its next runs."""
    payload = await read_json(request)
    expression = payload.get("cronExpression") if isinstance(payload, dict) else None
    if not isinstance(expression, str):
        msg = "cronExpression is required"
        raise ValidationError(msg)

    error = validation_error(expression)
    if error is not None:
        return web.json_response({"valid": False, "error": error, "nextRuns": []})
    runs = upcoming(expression, datetime.now(UTC))
    return web.json_response({
        "valid": True,
        "description": describe(expression),
        "nextRuns": [run.isoformat() for run in runs],
    })


def add_cronjob_routes(app: web.Application, prefix: str = "/api/cronjobs") -> None:
    """Mount the job routes under *prefix*."""
    app.router.add_get(prefix, list_jobs)
    app.router.add_post(prefix, create_job)
    app.router.add_post(f"{prefix}/validate", validate_expression)
    app.router.add_get(f"{prefix}/{{id}}", get_job)
    app.router.add_put(f"{prefix}/{{id}}", update_job)
    app.router.add_delete(f"{prefix}/{{id}}", delete_job)
    app.router.add_post(f"{prefix}/{{id}}/start", start_job)
    app.router.add_post(f"{prefix}/{{id}}/stop", stop_job)
    app.router.add_post(f"{prefix}/{{id}}/execute", execute_job)
