"""Tests for the REST API and WebSocket endpoint."""

from pathlib import Path

import pytest
from aiohttp.test_utils import TestClient, TestServer

from cronpush.app import Services, build_services, create_app


@pytest.fixture
def services(tmp_path: Path) -> Services:
    return build_services(db_path=tmp_path / "test.db")


@pytest.fixture
async def client(services: Services):
    """TestClient for the full app, scheduler included."""
    client = TestClient(TestServer(create_app(services)))
    await client.start_server()
    yield client
    await client.close()


def _job_body(**overrides) -> dict:
    body = {
        "name": "Ping",
        "description": "Every five minutes",
        "cronExpression": "*/5 * * * *",
        "jobType": "notification_check",
        "jobData": '{"title": "Ping", "message": "pong"}',
    }
    body.update(overrides)
    return body


# -- Health / CORS -------------------------------------------------------------


async def test_health_check(client: TestClient) -> None:
    resp = await client.get("/health")
    assert resp.status == 200
    data = await resp.json()
    assert data["status"] == "ok"
    assert data["scheduler"] is True


async def test_preflight(client: TestClient) -> None:
    resp = await client.options("/api/cronjobs")
    assert resp.status == 204
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "PUT" in resp.headers["Access-Control-Allow-Methods"]


async def test_cors_header_on_responses(client: TestClient) -> None:
    resp = await client.get("/api/cronjobs")
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


# -- Jobs ----------------------------------------------------------------------


async def test_create_and_list_jobs(client: TestClient) -> None:
    resp = await client.post("/api/cronjobs", json=_job_body())
    assert resp.status == 201
    created = await resp.json()
    assert created["name"] == "Ping"
    assert created["isActive"] is True
    assert created["nextRun"] is not None
    assert created["scheduleDescription"] == "Every 5 minutes"

    resp = await client.get("/api/cronjobs")
    assert resp.status == 200
    data = await resp.json()
    assert [j["id"] for j in data["cronJobs"]] == [created["id"]]

    # Same routes under the per-user dashboard prefix.
    resp = await client.get(f"/api/config/cronjobs/{created['id']}")
    assert resp.status == 200
    assert (await resp.json())["id"] == created["id"]


async def test_create_invalid_expression(client: TestClient) -> None:
    resp = await client.post("/api/cronjobs", json=_job_body(cronExpression="* * * *"))
    assert resp.status == 400
    data = await resp.json()
    assert "exactly 5 parts" in data["error"]


async def test_create_invalid_json(client: TestClient) -> None:
    resp = await client.post(
        "/api/cronjobs", data="{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status == 400
    assert (await resp.json())["error"] == "Invalid JSON"


async def test_get_unknown_job(client: TestClient) -> None:
    resp = await client.get("/api/cronjobs/missing")
    assert resp.status == 404
    assert "missing" in (await resp.json())["error"]


async def test_update_job(client: TestClient) -> None:
    created = await (await client.post("/api/cronjobs", json=_job_body())).json()

    resp = await client.put(
        f"/api/cronjobs/{created['id']}",
        json=_job_body(name="Daily", cronExpression="0 9 * * *"),
    )
    assert resp.status == 200
    updated = await resp.json()
    assert updated["name"] == "Daily"
    assert updated["cronExpression"] == "0 9 * * *"


async def test_stop_and_start(client: TestClient, services: Services) -> None:
    created = await (await client.post("/api/cronjobs", json=_job_body())).json()
    job_id = created["id"]

    resp = await client.post(f"/api/cronjobs/{job_id}/stop")
    assert resp.status == 200
    assert (await resp.json())["isActive"] is False
    assert services.engine.armed_job_ids() == []

    resp = await client.post(f"/api/cronjobs/{job_id}/start")
    assert resp.status == 200
    assert (await resp.json())["isActive"] is True
    assert services.engine.armed_job_ids() == [job_id]


async def test_delete_job(client: TestClient) -> None:
    created = await (await client.post("/api/cronjobs", json=_job_body())).json()

    resp = await client.delete(f"/api/cronjobs/{created['id']}")
    assert resp.status == 200

    resp = await client.get(f"/api/cronjobs/{created['id']}")
    assert resp.status == 404


async def test_execute_job(client: TestClient) -> None:
    created = await (await client.post("/api/cronjobs", json=_job_body())).json()

    resp = await client.post(f"/api/cronjobs/{created['id']}/execute")
    assert resp.status == 200
    data = await resp.json()
    assert data["job"]["lastRun"] is not None

    resp = await client.get("/api/notifications/alice")
    data = await resp.json()
    assert [n["title"] for n in data["notifications"]] == ["Ping"]


async def test_execute_failure_is_500(client: TestClient) -> None:
    created = await (
        await client.post("/api/cronjobs", json=_job_body(jobType="custom", jobData=None))
    ).json()

    resp = await client.post(f"/api/cronjobs/{created['id']}/execute")
    assert resp.status == 500
    assert "error" in await resp.json()


async def test_validate_expression(client: TestClient) -> None:
    resp = await client.post("/api/cronjobs/validate", json={"cronExpression": "0 9 * * 1-5"})
    assert resp.status == 200
    data = await resp.json()
    assert data["valid"] is True
    assert len(data["nextRuns"]) == 5

    resp = await client.post("/api/cronjobs/validate", json={"cronExpression": "61 * * * *"})
    data = await resp.json()
    assert data["valid"] is False
    assert "out of range" in data["error"]
    assert data["nextRuns"] == []


async def test_validate_requires_expression(client: TestClient) -> None:
    resp = await client.post("/api/cronjobs/validate", json={})
    assert resp.status == 400


# -- Notifications -------------------------------------------------------------


async def test_notification_read_flow(client: TestClient) -> None:
    resp = await client.post(
        "/api/notifications",
        json={"title": "Hello", "message": "World", "type": "info", "to_user_id": "alice"},
    )
    assert resp.status == 201
    created = await resp.json()

    data = await (await client.get("/api/notifications/alice")).json()
    assert data["unreadCount"] == 1
    assert data["notifications"][0]["isRead"] is False

    resp = await client.post(f"/api/notifications/{created['id']}/read/alice")
    assert (await resp.json())["updated"] is True

    data = await (await client.get("/api/notifications/alice?unread=true")).json()
    assert data["notifications"] == []
    assert data["unreadCount"] == 0


async def test_mark_all_read(client: TestClient) -> None:
    for i in range(3):
        await client.post("/api/notifications", json={"title": f"N{i}", "message": "x"})

    resp = await client.post("/api/notifications/mark-all-read/bob")
    assert (await resp.json())["count"] == 3
    resp = await client.post("/api/notifications/mark-all-read/bob")
    assert (await resp.json())["count"] == 0


async def test_user_to_user_needs_sender(client: TestClient) -> None:
    resp = await client.post(
        "/api/notifications",
        json={"title": "DM", "message": "hi", "category": "user-to-user", "to_user_id": "2"},
    )
    assert resp.status == 400


# -- WebSocket -----------------------------------------------------------------


async def test_websocket_register_and_receive(client: TestClient) -> None:
    ws = await client.ws_connect("/ws")
    try:
        greeting = await ws.receive_json()
        assert greeting["type"] == "connection"

        await ws.send_json({"type": "register", "user_id": "alice"})
        registered = await ws.receive_json()
        assert registered["data"]["message"] == "Registered as user alice"

        resp = await client.post(
            "/api/notifications",
            json={"title": "Live", "message": "now", "to_user_id": "alice"},
        )
        created = await resp.json()

        frame = await ws.receive_json()
        assert frame["type"] == "notification"
        assert frame["data"]["id"] == created["id"]

        await ws.send_json({"type": "markAsRead", "notificationId": created["id"]})
        # Commands are handled in order; the reply to a second register
        # means markAsRead has been applied.
        await ws.send_json({"type": "register", "userId": "alice"})
        await ws.receive_json()
    finally:
        await ws.close()

    data = await (await client.get("/api/notifications/alice")).json()
    assert data["unreadCount"] == 0


async def test_websocket_at_root_path(client: TestClient) -> None:
    ws = await client.ws_connect("/")
    try:
        await ws.send_json({"type": "bogus"})
        await ws.receive_json()
        error = await ws.receive_json()
        assert error["type"] == "error"
    finally:
        await ws.close()


async def test_blank_notification_title_is_400(client: TestClient) -> None:
    resp = await client.post("/api/notifications", json={"title": "  ", "message": "x"})
    assert resp.status == 400
    assert "blank" in (await resp.json())["error"]
