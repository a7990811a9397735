"""HTTP tests for the deployments router and the provisioner system surface."""

import pytest

from control_api.config import Settings, get_settings
from control_api.main import app
from shared.contracts.queues.provisioning import PROVISIONING_QUEUE
from shared.models import DeploymentStatus

SECRET_HEADERS = {"X-Provisioner-Secret": "test-provisioner-secret"}
STEP_IDS = [
    "provision",
    "push-config",
    "start-container",
    "fix-permissions",
    "deploy-workspace",
    "health",
]


def create_body(org, make_config, name="alpha", server_handle=None) -> dict:
    body = {"org_id": org.id, "instance_name": name, "config": make_config()}
    if server_handle:
        body["server_handle"] = server_handle
    return body


@pytest.mark.asyncio
class TestCreateDeployment:
    async def test_admitted_and_dispatched(self, client, seed, fake_redis, make_config):
        org = await seed.org()
        await seed.server("vps-a", max_instances=2)

        response = await client.post("/api/deployments/", json=create_body(org, make_config))

        assert response.status_code == 201  # noqa: PLR2004
        data = response.json()
        assert data["status"] == "queued"
        assert data["server_handle"] == "vps-a"
        assert data["config"]["gateway_auth"]["token"] == "********"
        assert [step["id"] for step in data["steps"]] == STEP_IDS
        assert fake_redis.messages(PROVISIONING_QUEUE)[0]["deployment_id"] == data["id"]

    async def test_correlation_id_reaches_job(self, client, seed, fake_redis, make_config):
        org = await seed.org()
        await seed.server()

        response = await client.post(
            "/api/deployments/",
            json=create_body(org, make_config),
            headers={"X-Correlation-ID": "req_trace01"},
        )

        assert response.headers["X-Correlation-ID"] == "req_trace01"
        assert fake_redis.messages(PROVISIONING_QUEUE)[0]["correlation_id"] == "req_trace01"

    async def test_publish_failure_still_admits(self, client, seed, fake_redis, make_config):
        org = await seed.org()
        await seed.server()
        fake_redis.fail_publish = True

        response = await client.post("/api/deployments/", json=create_body(org, make_config))

        assert response.status_code == 201  # noqa: PLR2004
        assert fake_redis.messages(PROVISIONING_QUEUE) == []

        fake_redis.fail_publish = False
        deployment_id = response.json()["id"]
        redispatch = await client.post(f"/api/deployments/{deployment_id}/dispatch")

        assert redispatch.status_code == 200  # noqa: PLR2004
        assert redispatch.json()["dispatched"] is True
        assert fake_redis.messages(PROVISIONING_QUEUE)[0]["deployment_id"] == deployment_id

    async def test_rejection_body_carries_reason(self, client, seed, fake_redis, make_config):
        org = await seed.org()
        await seed.server(max_instances=None)

        response = await client.post("/api/deployments/", json=create_body(org, make_config))

        assert response.status_code == 409  # noqa: PLR2004
        detail = response.json()["detail"]
        assert detail["error_code"] == "AdmissionError"
        assert detail["reason"] == "no_capacity"
        assert fake_redis.messages(PROVISIONING_QUEUE) == []

    async def test_invalid_name(self, client, seed, make_config):
        org = await seed.org()
        await seed.server()

        response = await client.post(
            "/api/deployments/", json=create_body(org, make_config, name="Bad_Name")
        )

        assert response.status_code == 422  # noqa: PLR2004
        assert response.json()["detail"]["reason"] == "invalid_name"

    async def test_explicit_server_without_grant(self, client, seed, make_config):
        org = await seed.org()
        await seed.server("vps-a")

        response = await client.post(
            "/api/deployments/", json=create_body(org, make_config, server_handle="vps-a")
        )

        assert response.status_code == 403  # noqa: PLR2004
        assert response.json()["detail"]["reason"] == "no_access"

    async def test_unknown_org(self, client, seed, make_config):
        await seed.server()
        body = {"org_id": "nope", "instance_name": "alpha", "config": make_config()}

        response = await client.post("/api/deployments/", json=body)

        assert response.status_code == 404  # noqa: PLR2004
        assert response.json()["detail"]["kind"] == "organization"

    async def test_bad_brain_file_name_rejected(self, client, seed, make_config):
        org = await seed.org()
        await seed.server()
        body = create_body(org, make_config)
        body["config"]["brain_files"] = [{"name": "../etc/passwd", "content": "x"}]

        response = await client.post("/api/deployments/", json=body)

        assert response.status_code == 422  # noqa: PLR2004


@pytest.mark.asyncio
class TestReadAndCancel:
    async def test_list_filters(self, client, seed):
        org = await seed.org()
        other = await seed.org("other")
        vps = await seed.server()
        await seed.deployment(org, vps, name="one")
        await seed.deployment(org, vps, name="two", status=DeploymentStatus.FAILED)
        await seed.deployment(other, vps, name="three")

        everything = await client.get("/api/deployments/")
        mine = await client.get("/api/deployments/", params={"org_id": org.id})
        active = await client.get("/api/deployments/", params={"org_id": org.id, "active": True})

        assert len(everything.json()) == 3  # noqa: PLR2004
        assert {d["instance_name"] for d in mine.json()} == {"one", "two"}
        assert [d["instance_name"] for d in active.json()] == ["one"]

    async def test_get_redacts_token(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())

        response = await client.get(f"/api/deployments/{deployment.id}")

        assert response.status_code == 200  # noqa: PLR2004
        assert response.json()["config"]["gateway_auth"]["token"] == "********"

    async def test_get_unknown(self, client):
        response = await client.get("/api/deployments/missing")

        assert response.status_code == 404  # noqa: PLR2004
        assert response.json()["detail"]["error_code"] == "NotFoundError"

    async def test_cancel_queued(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())

        response = await client.post(f"/api/deployments/{deployment.id}/cancel")

        assert response.status_code == 200  # noqa: PLR2004
        data = response.json()
        assert data["status"] == "cancelled"
        assert {step["status"] for step in data["steps"]} == {"skipped"}
        assert data["completed_at"] is not None

    async def test_cancel_provisioning_refused(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(
            org, await seed.server(), status=DeploymentStatus.PROVISIONING
        )

        response = await client.post(f"/api/deployments/{deployment.id}/cancel")

        assert response.status_code == 409  # noqa: PLR2004
        assert response.json()["detail"]["error_code"] == "DeploymentStateError"

    async def test_dispatch_refused_once_provisioning(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(
            org, await seed.server(), status=DeploymentStatus.PROVISIONING
        )

        response = await client.post(f"/api/deployments/{deployment.id}/dispatch")

        assert response.status_code == 409  # noqa: PLR2004


@pytest.mark.asyncio
class TestSystemSurface:
    async def test_missing_secret_forbidden(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())

        response = await client.get(f"/api/system/deployments/{deployment.id}")

        assert response.status_code == 403  # noqa: PLR2004

    async def test_wrong_secret_forbidden(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())

        response = await client.get(
            f"/api/system/deployments/{deployment.id}",
            headers={"X-Provisioner-Secret": "not-the-secret"},
        )

        assert response.status_code == 403  # noqa: PLR2004

    async def test_unconfigured_secret_is_server_error(self, client, seed):
        app.dependency_overrides[get_settings] = lambda: Settings(provisioner_secret="")
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())

        response = await client.get(
            f"/api/system/deployments/{deployment.id}", headers=SECRET_HEADERS
        )

        assert response.status_code == 500  # noqa: PLR2004

    async def test_system_read_is_unredacted(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())

        response = await client.get(
            f"/api/system/deployments/{deployment.id}", headers=SECRET_HEADERS
        )

        assert response.status_code == 200  # noqa: PLR2004
        assert response.json()["config"]["gateway_auth"]["token"] == "gw-token-123"

    async def test_step_progress_and_failure(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())
        base = f"/api/system/deployments/{deployment.id}"

        running = await client.post(
            f"{base}/steps/provision", json={"status": "running"}, headers=SECRET_HEADERS
        )
        assert running.json()["status"] == "provisioning"

        await client.post(f"{base}/steps/provision", json={"status": "success"}, headers=SECRET_HEADERS)
        await client.post(f"{base}/steps/push-config", json={"status": "running"}, headers=SECRET_HEADERS)
        failed = await client.post(
            f"{base}/steps/push-config",
            json={"status": "failed", "error": "disk full"},
            headers=SECRET_HEADERS,
        )
        assert failed.json()["status"] == "failed"
        assert failed.json()["error"] == "disk full"
        steps = {step["id"]: step for step in failed.json()["steps"]}
        assert steps["provision"]["status"] == "success"
        assert steps["push-config"]["status"] == "failed"
        assert steps["push-config"]["error"] == "disk full"
        assert {steps[s]["status"] for s in STEP_IDS[2:]} == {"skipped"}

        restart = await client.post(
            f"{base}/steps/start-container", json={"status": "running"}, headers=SECRET_HEADERS
        )
        assert restart.status_code == 409  # noqa: PLR2004

        final = await client.post(f"{base}/fail", json={"error": "disk full"}, headers=SECRET_HEADERS)
        assert final.status_code == 200  # noqa: PLR2004
        assert final.json()["status"] == "failed"
        assert final.json()["error"] == "disk full"

    async def test_step_out_of_order_is_rejected(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())
        base = f"/api/system/deployments/{deployment.id}"

        skipped_ahead = await client.post(
            f"{base}/steps/start-container", json={"status": "running"}, headers=SECRET_HEADERS
        )
        unstarted = await client.post(
            f"{base}/steps/provision", json={"status": "success"}, headers=SECRET_HEADERS
        )

        assert skipped_ahead.status_code == 409  # noqa: PLR2004
        assert unstarted.status_code == 409  # noqa: PLR2004
        record = await client.get(base, headers=SECRET_HEADERS)
        assert record.json()["status"] == "queued"

    async def test_unknown_step(self, client, seed):
        org = await seed.org()
        deployment = await seed.deployment(org, await seed.server())

        response = await client.post(
            f"/api/system/deployments/{deployment.id}/steps/reboot",
            json={"status": "running"},
            headers=SECRET_HEADERS,
        )

        assert response.status_code == 409  # noqa: PLR2004

    async def test_complete_binds_instance(self, client, seed):
        org = await seed.org()
        vps = await seed.server()
        skill = await seed.skill()
        deployment = await seed.deployment(org, vps, name="alpha")
        base = f"/api/system/deployments/{deployment.id}"

        for step_id in STEP_IDS:
            await client.post(f"{base}/steps/{step_id}", json={"status": "running"}, headers=SECRET_HEADERS)
            await client.post(f"{base}/steps/{step_id}", json={"status": "success"}, headers=SECRET_HEADERS)
        port = await client.post(f"{base}/port", json={"port": 19042}, headers=SECRET_HEADERS)
        assert port.json()["port"] == 19042  # noqa: PLR2004

        created = await client.post(
            "/api/system/gateway-instances",
            json={
                "server_handle": vps.handle,
                "org_id": org.id,
                "name": "alpha",
                "port": 19042,
                "token": "gw-token-123",
                "url": f"ws://{vps.public_ip}:19042",
            },
            headers=SECRET_HEADERS,
        )
        assert created.status_code == 201  # noqa: PLR2004
        instance = created.json()
        assert instance["token"] == "********"

        assigned = await client.post(
            f"/api/system/gateway-instances/{instance['id']}/skills",
            json={"skill_ids": [skill.id, skill.id]},
            headers=SECRET_HEADERS,
        )
        assert assigned.json()["assigned"] == [skill.id]

        completed = await client.post(
            f"{base}/complete", json={"gateway_instance_id": instance["id"]}, headers=SECRET_HEADERS
        )
        assert completed.status_code == 200  # noqa: PLR2004
        assert completed.json()["status"] == "running"
        assert completed.json()["gateway_instance_id"] == instance["id"]

        again = await client.post(f"{base}/fail", json={"error": "late"}, headers=SECRET_HEADERS)
        assert again.status_code == 409  # noqa: PLR2004

    async def test_complete_refused_with_unfinished_steps(self, client, seed):
        org = await seed.org()
        vps = await seed.server()
        deployment = await seed.deployment(org, vps, name="alpha", status=DeploymentStatus.PROVISIONING)
        instance = await seed.instance(org, vps, name="alpha")

        response = await client.post(
            f"/api/system/deployments/{deployment.id}/complete",
            json={"gateway_instance_id": instance.id},
            headers=SECRET_HEADERS,
        )

        assert response.status_code == 409  # noqa: PLR2004

    async def test_duplicate_instance_port_conflicts(self, client, seed):
        org = await seed.org()
        vps = await seed.server()
        await seed.instance(org, vps, name="taken", port=19001)

        response = await client.post(
            "/api/system/gateway-instances",
            json={"server_handle": vps.handle, "org_id": org.id, "name": "fresh", "port": 19001},
            headers=SECRET_HEADERS,
        )

        assert response.status_code == 409  # noqa: PLR2004

    async def test_credentials_scoped_to_org(self, client, seed):
        org = await seed.org()
        other = await seed.org("other")
        await seed.credential("anthropic", "sk-ant-global")
        await seed.credential("openai", "sk-openai-acme", org_id=org.id)
        await seed.credential("google", "google-other", org_id=other.id)

        response = await client.get(
            "/api/system/credentials", params={"org_id": org.id}, headers=SECRET_HEADERS
        )

        assert response.status_code == 200  # noqa: PLR2004
        assert {c["value"] for c in response.json()} == {"sk-ant-global", "sk-openai-acme"}

    async def test_skill_lookup(self, client, seed):
        skill = await seed.skill()

        found = await client.get(f"/api/system/skills/{skill.id}", headers=SECRET_HEADERS)
        missing = await client.get("/api/system/skills/nope", headers=SECRET_HEADERS)

        assert found.json()["content"] == "# Web research"
        assert missing.status_code == 404  # noqa: PLR2004
