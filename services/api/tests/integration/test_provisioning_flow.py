"""End-to-end provisioning: admission, then the pipeline calling back into the API."""

import json

import httpx
import pytest
import pytest_asyncio

from control_api.main import app
from provisioner_worker.clients.control_api import ControlAPIClient
from provisioner_worker.provisioning.pipeline import DeploymentPipeline, PipelineOptions
from provisioner_worker.provisioning.port_allocator import (
    PORT_RANGE_END,
    PORT_RANGE_START,
    preferred_port,
)
from shared.models import GatewayInstanceStatus


@pytest_asyncio.fixture
async def api(client):
    api = ControlAPIClient(
        "http://test", "test-provisioner-secret", transport=httpx.ASGITransport(app=app)
    )
    yield api
    await api.close()


@pytest.fixture
def pipeline(api, fake_shell):
    return DeploymentPipeline(
        api, lambda server: fake_shell, PipelineOptions(image="openclaw:test", memory_limit="1g")
    )


async def admit(client, org, make_config, **config) -> dict:
    response = await client.post(
        "/api/deployments/",
        json={"org_id": org.id, "instance_name": "alpha", "config": make_config(**config)},
    )
    assert response.status_code == 201  # noqa: PLR2004
    return response.json()


@pytest.mark.asyncio
class TestProvisioningFlow:
    async def test_successful_run_binds_instance(
        self, client, seed, fake_shell, pipeline, make_config
    ):
        org = await seed.org()
        await seed.server("vps-a", public_ip="203.0.113.10")
        await seed.credential("anthropic", "sk-ant-test")
        skill = await seed.skill()
        fake_shell.on("ss -tlnp", stdout="22\n19001\n")
        deployment = await admit(client, org, make_config, skill_ids=[skill.id])

        outcome = await pipeline.run(deployment["id"])

        assert outcome.status == "success"
        assert PORT_RANGE_START <= outcome.port <= PORT_RANGE_END
        assert outcome.url == f"ws://203.0.113.10:{outcome.port}"

        record = (await client.get(f"/api/deployments/{deployment['id']}")).json()
        assert record["status"] == "running"
        assert record["port"] == outcome.port
        assert record["gateway_instance_id"] == outcome.gateway_instance_id
        assert {step["status"] for step in record["steps"]} == {"success"}

        instance = (await client.get(f"/api/gateway-instances/{outcome.gateway_instance_id}")).json()
        assert instance["name"] == "alpha"
        assert instance["status"] == "running"
        assert instance["state_dir"] == "/opt/openclaw-instances/acme-alpha"

        state_dir = "/opt/openclaw-instances/acme-alpha"
        openclaw = json.loads(fake_shell.files[f"{state_dir}/openclaw.json"])
        assert openclaw["gateway"]["port"] == outcome.port
        assert openclaw["gateway"]["auth"]["token"] == "gw-token-123"
        assert openclaw["agents"]["defaults"]["model"]["primary"] == "anthropic/claude-sonnet-4"
        assert fake_shell.files[f"{state_dir}/workspace/SOUL.md"] == "# Soul"
        assert fake_shell.files[f"{state_dir}/workspace/skills/web-research/SKILL.md"] == "# Web research"
        assert fake_shell.ran("docker run -d --name openclaw-acme-alpha")
        assert fake_shell.ran("--memory 1g")

    async def test_failed_step_fails_deployment(
        self, client, seed, fake_shell, pipeline, make_config
    ):
        org = await seed.org()
        await seed.server("vps-a")
        await seed.credential("anthropic", "sk-ant-test")
        fake_shell.on("docker run", stderr="no space left on device", exit_code=125)
        deployment = await admit(client, org, make_config)

        outcome = await pipeline.run(deployment["id"])

        assert outcome.status == "failed"
        assert outcome.failed_step == "start-container"

        record = (await client.get(f"/api/deployments/{deployment['id']}")).json()
        statuses = {step["id"]: step["status"] for step in record["steps"]}
        assert record["status"] == "failed"
        assert "no space left on device" in record["error"]
        assert statuses == {
            "provision": "success",
            "push-config": "success",
            "start-container": "failed",
            "fix-permissions": "skipped",
            "deploy-workspace": "skipped",
            "health": "skipped",
        }
        assert record["gateway_instance_id"] is None
        assert (await client.get("/api/gateway-instances/")).json() == []

    async def test_missing_credentials_fail_first_step(
        self, client, seed, fake_shell, pipeline, make_config
    ):
        org = await seed.org()
        await seed.server("vps-a")
        deployment = await admit(client, org, make_config)

        outcome = await pipeline.run(deployment["id"])

        assert outcome.failed_step == "provision"
        record = (await client.get(f"/api/deployments/{deployment['id']}")).json()
        assert record["status"] == "failed"
        assert record["error"] == "No auth credentials available. Configure API keys in Settings."
        assert not fake_shell.ran("docker run")

    async def test_cancelled_deployment_is_skipped(
        self, client, seed, fake_shell, pipeline, make_config
    ):
        org = await seed.org()
        await seed.server("vps-a")
        deployment = await admit(client, org, make_config)
        await client.post(f"/api/deployments/{deployment['id']}/cancel")

        outcome = await pipeline.run(deployment["id"])

        assert outcome.status == "skipped"
        assert fake_shell.commands == []

    async def test_health_failure_does_not_fail_deployment(
        self, client, seed, fake_shell, pipeline, make_config
    ):
        org = await seed.org()
        await seed.server("vps-a")
        await seed.credential("anthropic", "sk-ant-test")
        fake_shell.on("curl -sf", stdout="gateway crashed", exit_code=1)
        deployment = await admit(client, org, make_config)

        outcome = await pipeline.run(deployment["id"])

        assert outcome.status == "success"
        record = (await client.get(f"/api/deployments/{deployment['id']}")).json()
        assert record["status"] == "running"

    async def test_stopped_instance_port_is_not_reused(
        self, client, seed, fake_shell, pipeline, make_config
    ):
        org = await seed.org()
        vps = await seed.server("vps-a")
        await seed.credential("anthropic", "sk-ant-test")
        taken = preferred_port("alpha")
        await seed.instance(org, vps, name="parked", port=taken, status=GatewayInstanceStatus.STOPPED)
        fake_shell.on("ss -tlnp", stdout="22\n")
        deployment = await admit(client, org, make_config)

        outcome = await pipeline.run(deployment["id"])

        assert outcome.status == "success"
        assert outcome.port != taken
        record = (await client.get(f"/api/deployments/{deployment['id']}")).json()
        assert record["status"] == "running"
        assert {step["status"] for step in record["steps"]} == {"success"}

    async def test_reserved_ports_cover_instances_and_in_flight(self, client, seed):
        org = await seed.org()
        vps = await seed.server("vps-a")
        other = await seed.server("vps-b")
        await seed.instance(org, vps, name="parked", port=19100, status=GatewayInstanceStatus.STOPPED)
        await seed.instance(org, other, name="elsewhere", port=19200)
        mine = await seed.deployment(org, vps, name="mine")
        sibling = await seed.deployment(org, vps, name="sibling")
        headers = {"X-Provisioner-Secret": "test-provisioner-secret"}
        for deployment, port in ((mine, 19300), (sibling, 19400)):
            await client.post(
                f"/api/system/deployments/{deployment.id}/port", json={"port": port}, headers=headers
            )

        response = await client.get(
            "/api/system/servers/vps-a/reserved-ports",
            params={"exclude_deployment_id": mine.id},
            headers=headers,
        )

        assert response.status_code == 200  # noqa: PLR2004
        assert response.json() == {"server_handle": "vps-a", "ports": [19100, 19400]}
