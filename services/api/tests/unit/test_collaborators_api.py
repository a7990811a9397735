"""Servers, organizations, skills and credentials routers."""

import pytest

from shared.models import DeploymentStatus, GatewayInstanceStatus, ServerStatus

SERVER = {
    "handle": "vps-a",
    "hostname": "vps-a.example.net",
    "public_ip": "10.0.0.7",
    "status": "running",
    "max_instances": 3,
}


@pytest.mark.asyncio
class TestServers:
    async def test_create(self, client):
        response = await client.post("/api/servers/", json=SERVER)

        assert response.status_code == 201  # noqa: PLR2004
        assert response.json()["ssh_user"] == "root"
        assert response.json()["max_instances"] == 3  # noqa: PLR2004

    async def test_read_capacity(self, client, seed):
        org = await seed.org()
        vps = await seed.server("vps-a", max_instances=3)
        await seed.instance(org, vps, name="one", port=19001)
        await seed.deployment(org, vps, name="two")

        response = await client.get("/api/servers/vps-a")

        data = response.json()
        assert data["instance_count"] == 1
        assert data["in_flight"] == 1
        assert data["remaining"] == 1

    async def test_duplicate_handle(self, client):
        await client.post("/api/servers/", json=SERVER)

        response = await client.post("/api/servers/", json=SERVER)

        assert response.status_code == 409  # noqa: PLR2004

    async def test_list_by_status(self, client, seed):
        await seed.server("vps-a")
        await seed.server("vps-b", status=ServerStatus.STOPPED)

        response = await client.get("/api/servers/", params={"status": "running"})

        assert [s["handle"] for s in response.json()] == ["vps-a"]

    async def test_unassigned_server_is_tracked_but_not_placed(self, client, seed, make_config):
        response = await client.post("/api/servers/", json={**SERVER, "status": "unassigned"})
        org = await seed.org()

        listed = await client.get("/api/servers/", params={"status": "unassigned"})
        placed = await client.post(
            "/api/deployments/",
            json={"org_id": org.id, "instance_name": "alpha", "config": make_config()},
        )

        assert response.status_code == 201  # noqa: PLR2004
        assert response.json()["status"] == "unassigned"
        assert [s["handle"] for s in listed.json()] == [SERVER["handle"]]
        assert placed.json()["detail"]["reason"] == "no_capacity"

    async def test_unmanaged_server_reports_no_remaining(self, client, seed):
        await seed.server("vps-a", max_instances=None)

        response = await client.get("/api/servers/vps-a")

        assert response.json()["remaining"] is None

    async def test_patch_updates_only_given_fields(self, client, seed):
        await seed.server("vps-a", max_instances=3)

        response = await client.patch("/api/servers/vps-a", json={"max_instances": 8})

        assert response.status_code == 200  # noqa: PLR2004
        assert response.json()["max_instances"] == 8  # noqa: PLR2004
        assert response.json()["hostname"] == "vps-a.example.net"

    async def test_delete_refused_while_in_use(self, client, seed):
        org = await seed.org()
        vps = await seed.server("vps-a")
        await seed.deployment(org, vps, status=DeploymentStatus.PROVISIONING)

        response = await client.delete("/api/servers/vps-a")

        assert response.status_code == 409  # noqa: PLR2004
        assert response.json()["detail"]["in_flight"] == 1

    async def test_delete_idle_server(self, client, seed):
        org = await seed.org()
        vps = await seed.server("vps-a")
        await seed.deployment(org, vps, status=DeploymentStatus.FAILED)

        response = await client.delete("/api/servers/vps-a")

        assert response.status_code == 204  # noqa: PLR2004
        assert (await client.get("/api/servers/vps-a")).status_code == 404  # noqa: PLR2004


@pytest.mark.asyncio
class TestOrganizations:
    async def test_create_and_duplicate_slug(self, client):
        body = {"name": "Acme", "slug": "acme", "max_instances": 5}

        created = await client.post("/api/organizations/", json=body)
        duplicate = await client.post("/api/organizations/", json=body)

        assert created.status_code == 201  # noqa: PLR2004
        assert created.json()["plan"] == "free"
        assert duplicate.status_code == 409  # noqa: PLR2004

    async def test_invalid_slug(self, client):
        response = await client.post("/api/organizations/", json={"name": "Acme", "slug": "Acme Inc"})

        assert response.status_code == 422  # noqa: PLR2004

    async def test_grant_lifecycle(self, client, seed):
        org = await seed.org()
        await seed.server("vps-a")
        base = f"/api/organizations/{org.id}/server-access"

        granted = await client.post(base, json={"server_handle": "vps-a", "max_instances": 2})
        duplicate = await client.post(base, json={"server_handle": "vps-a", "max_instances": 1})
        updated = await client.patch(f"{base}/vps-a", json={"max_instances": 4})
        listed = await client.get(base)

        assert granted.status_code == 201  # noqa: PLR2004
        assert duplicate.status_code == 409  # noqa: PLR2004
        assert updated.json()["max_instances"] == 4  # noqa: PLR2004
        assert [g["server_handle"] for g in listed.json()] == ["vps-a"]

        revoked = await client.delete(f"{base}/vps-a")
        assert revoked.status_code == 204  # noqa: PLR2004
        assert (await client.get(base)).json() == []

    async def test_grant_for_unknown_server(self, client, seed):
        org = await seed.org()

        response = await client.post(
            f"/api/organizations/{org.id}/server-access",
            json={"server_handle": "nope", "max_instances": 1},
        )

        assert response.status_code == 404  # noqa: PLR2004

    async def test_revoke_refused_with_running_instances(self, client, seed):
        org = await seed.org()
        vps = await seed.server("vps-a")
        await seed.grant(org, vps)
        await seed.instance(org, vps, status=GatewayInstanceStatus.RUNNING)

        response = await client.delete(f"/api/organizations/{org.id}/server-access/vps-a")

        assert response.status_code == 409  # noqa: PLR2004
        assert response.json()["detail"]["running_instances"] == 1


@pytest.mark.asyncio
class TestSkillsAndCredentials:
    async def test_skills(self, client):
        await client.post("/api/skills/", json={"name": "web-research", "content": "# Web"})
        await client.post("/api/skills/", json={"name": "calendar", "is_enabled": False})
        duplicate = await client.post("/api/skills/", json={"name": "calendar"})

        everything = await client.get("/api/skills/")
        enabled = await client.get("/api/skills/", params={"enabled": True})

        assert duplicate.status_code == 409  # noqa: PLR2004
        assert [s["name"] for s in everything.json()] == ["calendar", "web-research"]
        assert [s["name"] for s in enabled.json()] == ["web-research"]

    async def test_credential_values_never_listed(self, client):
        created = await client.post(
            "/api/credentials/",
            json={"provider": "anthropic", "key": "ai.anthropic_api_key", "value": "sk-ant-secret"},
        )
        listed = await client.get("/api/credentials/")

        assert created.status_code == 201  # noqa: PLR2004
        assert "value" not in created.json()
        assert listed.json()[0]["provider"] == "anthropic"
        assert "value" not in listed.json()[0]


@pytest.mark.asyncio
async def test_health(client):
    assert (await client.get("/health")).json() == {"status": "ok"}
    assert (await client.get("/health/ready")).json() == {"status": "ok", "database": "ok"}
