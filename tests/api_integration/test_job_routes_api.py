from datetime import datetime, timezone

import pytest

fastapi = pytest.importorskip("fastapi")
httpx = pytest.importorskip("httpx")

from starlette.requests import ClientDisconnect, Request  # type: ignore[import-not-found]

from server.main import app
from server.models import JobStatus, JobType
from server.services.auth.authorization_gate import ConfiguredAuthorizationGate
from server.services.orchestration.in_memory_job_engine import InMemoryJobEngine
from server.services.orchestration.job_configuration import (
    APP_PATH,
    COORDINATOR_APP_PATH,
    USER_NAME,
    JobConfiguration,
)
from server.services.orchestration.job_dispatcher import JobCommandDispatcher
from server.services.platform.maintenance_pause import MaintenancePauseController


async def _request(method: str, path: str, **kwargs):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        return await client.request(method, path, **kwargs)


@pytest.fixture
def engine(monkeypatch):
    engine = InMemoryJobEngine(
        clock=lambda: datetime(2030, 1, 1, 10, 0, tzinfo=timezone.utc),
        server_name="api",
    )
    gate = ConfiguredAuthorizationGate(owner_lookup=engine, group_lookup=lambda user: [])
    dispatcher = JobCommandDispatcher(engine=engine, gate=gate, pause_controller=MaintenancePauseController())
    monkeypatch.setattr("server.routers.jobs.job_dispatcher", dispatcher)
    return engine


def _submit_workflow(engine, *actions):
    conf = JobConfiguration({USER_NAME: "alice", APP_PATH: "/apps/wf"})
    return engine.submit_job(conf, JobType.WORKFLOW, app_name="wf", actions=actions)


@pytest.mark.asyncio
async def test_start_then_info_in_timezone(engine):
    job_id = _submit_workflow(engine, "a")

    started = await _request("PUT", f"/v2/job/{job_id}", params={"action": "start", "user.name": "alice"})
    assert started.status_code == 200
    assert started.content == b""

    info = await _request("GET", f"/v2/job/{job_id}", params={"timezone": "America/New_York"})
    assert info.status_code == 200
    body = info.json()
    assert body["status"] == "RUNNING"
    assert body["start_time"] == "Tue, 01 Jan 2030 05:00:00 EST"
    assert body["actions"][0]["status"] == "RUNNING"


@pytest.mark.asyncio
async def test_unknown_action_and_missing_action(engine):
    job_id = _submit_workflow(engine)

    unknown = await _request("PUT", f"/v2/job/{job_id}", params={"action": "frobnicate"})
    assert unknown.status_code == 400
    assert unknown.json() == {
        "code": "UNSUPPORTED_PARAMETER_VALUE",
        "message": "Invalid parameter value, [action] = [frobnicate]",
        "details": {"param": "action", "value": "frobnicate"},
        "job_id": job_id,
    }

    missing = await _request("PUT", f"/v2/job/{job_id}")
    assert missing.status_code == 400
    assert missing.json()["code"] == "MISSING_PARAMETER"


@pytest.mark.asyncio
async def test_write_denied_for_other_user_when_secured(engine, security_enabled):
    job_id = _submit_workflow(engine)

    denied = await _request("PUT", f"/v2/job/{job_id}", params={"action": "kill"}, headers={"X-Remote-User": "mallory"})
    assert denied.status_code == 401
    assert denied.json()["code"] == "AUTHORIZATION_DENIED"

    allowed = await _request("PUT", f"/v2/job/{job_id}", params={"action": "kill"}, headers={"X-Remote-User": "alice"})
    assert allowed.status_code == 200

    read = await _request("GET", f"/v2/job/{job_id}", params={"show": "status", "user.name": "mallory"})
    assert read.json() == {"status": "KILLED"}


@pytest.mark.asyncio
async def test_unknown_job_is_not_found(engine):
    response = await _request("GET", "/v2/job/0000042-300101100000-api-W", params={"show": "log"})
    assert response.status_code == 404
    assert response.json()["code"] == "JOB_NOT_FOUND"


@pytest.mark.asyncio
async def test_rerun_with_xml_configuration(engine):
    job_id = _submit_workflow(engine, "a")
    engine.set_status(job_id, JobStatus.FAILED)
    payload = JobConfiguration({APP_PATH: "/apps/wf"}).to_xml()

    wrong_type = await _request(
        "PUT",
        f"/v2/job/{job_id}",
        params={"action": "rerun", "user.name": "alice"},
        content=payload,
        headers={"Content-Type": "application/json"},
    )
    assert wrong_type.status_code == 400
    assert wrong_type.json()["code"] == "INVALID_CONTENT_TYPE"

    rerun = await _request(
        "PUT",
        f"/v2/job/{job_id}",
        params={"action": "rerun", "user.name": "alice"},
        content=payload,
        headers={"Content-Type": "application/xml;charset=UTF-8"},
    )
    assert rerun.status_code == 200
    info = engine.get_job(job_id, {})
    assert info.run == 1
    assert info.conf[USER_NAME] == "alice"


@pytest.mark.asyncio
async def test_coordinator_kill_actions_returns_json(engine):
    conf = JobConfiguration({USER_NAME: "alice", COORDINATOR_APP_PATH: "/apps/c"})
    job_id = engine.submit_job(conf, JobType.COORDINATOR, app_name="coord", actions=["1", "2"])

    response = await _request("PUT", f"/v2/job/{job_id}", params={"action": "kill", "type": "action", "scope": "2"})
    assert response.status_code == 200
    assert [action["name"] for action in response.json()["actions"]] == ["2"]


@pytest.mark.asyncio
async def test_log_definition_and_graph_bodies(engine):
    job_id = _submit_workflow(engine, "a", "b")

    log = await _request("GET", f"/v2/job/{job_id}", params={"show": "log"})
    assert log.status_code == 200
    assert log.headers["content-type"].startswith("text/plain")
    assert "Job submitted by user [alice]" in log.text

    definition = await _request("GET", f"/v2/job/{job_id}", params={"show": "definition"})
    assert definition.headers["content-type"].startswith("application/xml")
    assert definition.text.startswith("<workflow-app")

    graph = await _request("GET", f"/v2/job/{job_id}", params={"show": "graph"})
    assert graph.headers["content-type"].startswith("text/vnd.graphviz")
    assert '"a" -> "b"' in graph.text


@pytest.mark.asyncio
async def test_root_endpoint():
    response = await _request("GET", "/")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_query_identity_cannot_override_missing_header_when_secured(engine, security_enabled):
    job_id = _submit_workflow(engine)

    spoofed = await _request("PUT", f"/v2/job/{job_id}", params={"action": "kill", "user.name": "alice"})
    assert spoofed.status_code == 401
    assert spoofed.json()["code"] == "AUTHORIZATION_DENIED"
    assert engine.get_job(job_id, {}).status == JobStatus.PREP


@pytest.mark.asyncio
async def test_client_disconnect_while_reading_payload(monkeypatch):
    engine = InMemoryJobEngine(server_name="api")
    pause = MaintenancePauseController()
    gate = ConfiguredAuthorizationGate(owner_lookup=engine, group_lookup=lambda user: [])
    dispatcher = JobCommandDispatcher(engine=engine, gate=gate, pause_controller=pause)
    monkeypatch.setattr("server.routers.jobs.job_dispatcher", dispatcher)
    job_id = _submit_workflow(engine, "a")

    async def _disconnected(self):
        raise ClientDisconnect()

    monkeypatch.setattr(Request, "body", _disconnected)

    response = await _request("PUT", f"/v2/job/{job_id}", params={"action": "kill", "user.name": "alice"})
    assert response.status_code == 400
    assert response.json()["code"] == "TRANSPORT_ERROR"
    assert pause.snapshot()["depth"] == 0
    assert engine.get_job(job_id, {}).status == JobStatus.PREP
