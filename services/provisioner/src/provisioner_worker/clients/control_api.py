"""HTTP client for the control API's system surface."""

from __future__ import annotations

import httpx

from shared.contracts.dto.credential import ProviderCredentialDTO
from shared.contracts.dto.deployment import DeploymentDTO
from shared.contracts.dto.gateway_instance import GatewayInstanceCreate, GatewayInstanceDTO
from shared.contracts.dto.organization import OrganizationDTO
from shared.contracts.dto.server import ReservedPorts, ServerDTO
from shared.contracts.dto.skill import SkillDTO
from shared.models import StepId, StepStatus

from ..errors import ControlAPIError

SECRET_HEADER = "X-Provisioner-Secret"


class ControlAPIClient:
    """Calls ``/api/system/*`` authenticated with the provisioner secret."""

    def __init__(
        self,
        base_url: str,
        secret: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        if self.base_url.endswith("/api"):
            raise RuntimeError("API_BASE_URL must not include /api")
        self._secret = secret
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={SECRET_HEADER: self._secret},
                follow_redirects=True,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def _api_path(self, path: str) -> str:
        cleaned = path.lstrip("/")
        if cleaned.startswith("api/"):
            raise ValueError("API path should not include /api prefix")
        return f"/api/system/{cleaned}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        api_path = self._api_path(path)
        try:
            resp = await client.request(method, api_path, **kwargs)
        except httpx.HTTPError as e:
            raise ControlAPIError(method, api_path, 503, str(e)) from e
        if resp.is_error:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            detail = body.get("detail", body) if isinstance(body, dict) else body
            raise ControlAPIError(method, api_path, resp.status_code, detail)
        return resp

    async def get_deployment(self, deployment_id: str) -> DeploymentDTO:
        resp = await self._request("GET", f"deployments/{deployment_id}")
        return DeploymentDTO.model_validate(resp.json())

    async def update_step(
        self,
        deployment_id: str,
        step_id: StepId,
        status: StepStatus,
        error: str | None = None,
    ) -> DeploymentDTO:
        resp = await self._request(
            "POST",
            f"deployments/{deployment_id}/steps/{StepId(step_id).value}",
            json={"status": StepStatus(status).value, "error": error},
        )
        return DeploymentDTO.model_validate(resp.json())

    async def set_port(self, deployment_id: str, port: int) -> None:
        await self._request("POST", f"deployments/{deployment_id}/port", json={"port": port})

    async def complete(self, deployment_id: str, gateway_instance_id: str) -> DeploymentDTO:
        resp = await self._request(
            "POST",
            f"deployments/{deployment_id}/complete",
            json={"gateway_instance_id": gateway_instance_id},
        )
        return DeploymentDTO.model_validate(resp.json())

    async def fail(self, deployment_id: str, error: str) -> None:
        await self._request("POST", f"deployments/{deployment_id}/fail", json={"error": error})

    async def create_gateway_instance(self, instance: GatewayInstanceCreate) -> GatewayInstanceDTO:
        resp = await self._request(
            "POST", "gateway-instances", json=instance.model_dump(mode="json")
        )
        return GatewayInstanceDTO.model_validate(resp.json())

    async def assign_skills(self, instance_id: str, skill_ids: list[str]) -> None:
        await self._request(
            "POST", f"gateway-instances/{instance_id}/skills", json={"skill_ids": skill_ids}
        )

    async def get_server(self, handle: str) -> ServerDTO:
        resp = await self._request("GET", f"servers/{handle}")
        return ServerDTO.model_validate(resp.json())

    async def get_reserved_ports(
        self, handle: str, exclude_deployment_id: str | None = None
    ) -> set[int]:
        """Ports the control plane has recorded on a server, listening or not."""
        params = {"exclude_deployment_id": exclude_deployment_id} if exclude_deployment_id else None
        resp = await self._request("GET", f"servers/{handle}/reserved-ports", params=params)
        return set(ReservedPorts.model_validate(resp.json()).ports)

    async def get_organization(self, org_id: str) -> OrganizationDTO:
        resp = await self._request("GET", f"organizations/{org_id}")
        return OrganizationDTO.model_validate(resp.json())

    async def get_skill(self, skill_id: str) -> SkillDTO | None:
        """Skill content, or None if the skill has since been removed."""
        try:
            resp = await self._request("GET", f"skills/{skill_id}")
        except ControlAPIError as e:
            if e.status_code == 404:  # noqa: PLR2004
                return None
            raise
        return SkillDTO.model_validate(resp.json())

    async def list_credentials(self, org_id: str) -> list[ProviderCredentialDTO]:
        resp = await self._request("GET", "credentials", params={"org_id": org_id})
        return [ProviderCredentialDTO.model_validate(item) for item in resp.json()]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
