"""
HTTP API tests.

The app is driven through httpx's ASGI transport with an in-memory engine
placed on app state, so the lifespan (database and Redis) is not started.
"""

from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from process_engine import __version__
from process_engine.api.app import create_app
from process_engine.orchestrator.factory import EngineResources


@pytest_asyncio.fixture
async def client(engine) -> AsyncClient:
    app = create_app()
    app.state.engine = engine
    app.state.resources = EngineResources(engine=engine)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def template_id(client, registered_functions, sample_template_json) -> str:
    response = await client.post("/v1/templates", json=sample_template_json)
    assert response.status_code == 201
    return response.json()["id"]


@pytest_asyncio.fixture
async def instance_id(client, template_id, sample_assignments) -> str:
    response = await client.post(
        "/v1/instances",
        json={"template_id": template_id, "task_assignments": sample_assignments},
    )
    assert response.status_code == 201
    return response.json()["instance_id"]


async def _pending_task_id(client: AsyncClient, assignee: str) -> str:
    response = await client.get("/v1/tasks/pending", headers={"X-Actor-Id": assignee})
    return response.json()["tasks"][0]["task"]["id"]


class TestHealthAndRoot:
    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/v1/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "version": __version__,
            "services": {"storage": "memory"},
        }


class TestFunctionRoutes:
    @pytest.mark.asyncio
    async def test_register_and_get(self, client):
        payload = {
            "function_code": "KYC_CHECK",
            "implementation_type": "USER_TASK",
            "description": "KYC check",
            "output_schema": {
                "type": "object",
                "properties": {"passed": {"type": "boolean"}},
                "required": ["passed"],
            },
        }

        created = await client.post("/v1/functions", json=payload)
        duplicate = await client.post("/v1/functions", json=payload)
        fetched = await client.get("/v1/functions/KYC_CHECK")

        assert created.status_code == 201
        assert duplicate.status_code == 409
        assert fetched.json()["description"] == "KYC check"

    @pytest.mark.asyncio
    async def test_service_function_needs_endpoint(self, client):
        response = await client.post(
            "/v1/functions",
            json={"function_code": "SCORE", "implementation_type": "SERVICE_TASK"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_function(self, client):
        assert (await client.get("/v1/functions/NOPE")).status_code == 404

    @pytest.mark.asyncio
    async def test_list_functions(self, client, registered_functions):
        response = await client.get("/v1/functions", params={"implementation_type": "USER_TASK"})

        codes = [f["function_code"] for f in response.json()]
        assert codes == ["FINAL_APPROVAL", "REVIEW_APPLICATION"]


class TestTemplateRoutes:
    @pytest.mark.asyncio
    async def test_create_and_get(self, client, template_id):
        response = await client.get(f"/v1/templates/{template_id}")

        assert response.status_code == 200
        assert response.json()["template_code"] == "LOAN_REVIEW"

    @pytest.mark.asyncio
    async def test_duplicate_code(self, client, template_id, sample_template_json):
        response = await client.post("/v1/templates", json=sample_template_json)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_validation_errors(self, client, sample_template_json):
        response = await client.post("/v1/templates", json=sample_template_json)

        assert response.status_code == 400
        errors = response.json()["detail"]["errors"]
        assert {e["code"] for e in errors} == {"UNKNOWN_FUNCTION"}
        assert {e["node_id"] for e in errors} == {"review", "approve"}

    @pytest.mark.asyncio
    async def test_deactivate_and_activate(self, client, template_id):
        deactivated = await client.post(f"/v1/templates/{template_id}/deactivate")
        listed = await client.get("/v1/templates", params={"is_active": "true"})
        activated = await client.post(f"/v1/templates/{template_id}/activate")

        assert deactivated.json()["is_active"] is False
        assert listed.json() == []
        assert activated.json()["is_active"] is True

    @pytest.mark.asyncio
    async def test_replace_definition(self, client, template_id):
        definition = {
            "nodes": [
                {"id": "start", "type": "START"},
                {"id": "review", "type": "TASK", "function_code": "REVIEW_APPLICATION"},
            ],
            "transitions": [{"id": "t1", "from_node_id": "start", "to_node_id": "review"}],
        }

        response = await client.put(f"/v1/templates/{template_id}/definition", json=definition)

        assert response.status_code == 200
        assert len(response.json()["definition"]["nodes"]) == 2

    @pytest.mark.asyncio
    async def test_unknown_template(self, client):
        assert (await client.get(f"/v1/templates/{uuid4()}")).status_code == 404


class TestInstanceRoutes:
    @pytest.mark.asyncio
    async def test_create_instance_advances_it(self, client, instance_id):
        response = await client.get(f"/v1/instances/{instance_id}/status")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "RUNNING"
        assert body["current_node_id"] == "review"
        assert body["total_tasks"] == 2

    @pytest.mark.asyncio
    async def test_unknown_template(self, client):
        response = await client.post("/v1/instances", json={"template_id": str(uuid4())})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_inactive_template(self, client, template_id, sample_assignments):
        await client.post(f"/v1/templates/{template_id}/deactivate")

        response = await client.post(
            "/v1/instances",
            json={"template_id": template_id, "task_assignments": sample_assignments},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_assignment(self, client, template_id):
        response = await client.post(
            "/v1/instances",
            json={"template_id": template_id, "task_assignments": {"review": "alice"}},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["node_ids"] == ["approve"]

    @pytest.mark.asyncio
    async def test_history(self, client, instance_id):
        response = await client.get(f"/v1/instances/{instance_id}/history")

        events = [e["event_type"] for e in response.json()["events"]]
        assert events == ["INSTANCE_CREATED", "TRANSITION", "TASK_CREATED"]

    @pytest.mark.asyncio
    async def test_unknown_instance(self, client):
        assert (await client.get(f"/v1/instances/{uuid4()}/status")).status_code == 404
        assert (await client.get(f"/v1/instances/{uuid4()}/history")).status_code == 404


class TestTaskRoutes:
    @pytest.mark.asyncio
    async def test_pending_tasks(self, client, instance_id):
        response = await client.get("/v1/tasks/pending", params={"assignee": "alice"})

        body = response.json()
        assert body["count"] == 1
        assert body["tasks"][0]["task"]["node_id"] == "review"
        assert body["tasks"][0]["fields"][0]["kind"] == "enum"

    @pytest.mark.asyncio
    async def test_pending_tasks_needs_assignee(self, client):
        assert (await client.get("/v1/tasks/pending")).status_code == 400

    @pytest.mark.asyncio
    async def test_complete_task(self, client, instance_id):
        task_id = await _pending_task_id(client, "alice")

        response = await client.post(
            f"/v1/tasks/{task_id}/complete",
            json={"output_data": {"decision": "approve"}},
            headers={"X-Actor-Id": "alice"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "task_id": task_id, "instance_id": instance_id}
        status = (await client.get(f"/v1/instances/{instance_id}/status")).json()
        assert status["current_node_id"] == "approve"

    @pytest.mark.asyncio
    async def test_complete_twice(self, client, instance_id):
        task_id = await _pending_task_id(client, "alice")
        payload = {"output_data": {"decision": "approve"}}

        await client.post(f"/v1/tasks/{task_id}/complete", json=payload, headers={"X-Actor-Id": "alice"})
        response = await client.post(
            f"/v1/tasks/{task_id}/complete", json=payload, headers={"X-Actor-Id": "alice"}
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_complete_as_someone_else(self, client, instance_id):
        task_id = await _pending_task_id(client, "alice")

        response = await client.post(
            f"/v1/tasks/{task_id}/complete",
            json={"output_data": {"decision": "approve"}},
            headers={"X-Actor-Id": "bob"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_complete_with_invalid_output(self, client, instance_id):
        task_id = await _pending_task_id(client, "alice")

        response = await client.post(
            f"/v1/tasks/{task_id}/complete",
            json={"output_data": {}},
            headers={"X-Actor-Id": "alice"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errors"] == [{"field": "decision", "message": "Field 'decision' is required"}]

    @pytest.mark.asyncio
    async def test_complete_unknown_task(self, client):
        response = await client.post(f"/v1/tasks/{uuid4()}/complete", json={"output_data": {}})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_fail_task(self, client, instance_id):
        task_id = await _pending_task_id(client, "alice")

        response = await client.post(
            f"/v1/tasks/{task_id}/fail", json={"error_message": "documents missing"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "FAILED"

    @pytest.mark.asyncio
    async def test_fail_as_someone_else(self, client, instance_id):
        task_id = await _pending_task_id(client, "alice")

        response = await client.post(
            f"/v1/tasks/{task_id}/fail",
            json={"error_message": "not mine"},
            headers={"X-Actor-Id": "mallory"},
        )

        assert response.status_code == 403
        pending = await client.get("/v1/tasks/pending", headers={"X-Actor-Id": "alice"})
        assert pending.json()["count"] == 1


class TestQueueRoutes:
    @pytest.mark.asyncio
    async def test_process_queue(self, client, instance_id):
        response = await client.post("/v1/process-queue", params={"limit": 5})

        assert response.status_code == 200
        assert response.json() == {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0}

    @pytest.mark.asyncio
    async def test_limit_must_be_positive(self, client):
        response = await client.post("/v1/process-queue", params={"limit": 0})

        assert response.status_code == 422
