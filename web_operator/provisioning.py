"""
Remote browser provisioning.

``BrowserbaseProvisioner`` talks to the Browserbase REST API;
``LocalProvisioner`` mints ids for browsers launched on this machine.
``SessionService`` pairs a provisioner with the session registry.
"""

import logging
import secrets
import string
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .config import OperatorConfig
from .errors import ProvisioningFailure
from .region import select_region
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

LOCAL_DEBUG_URL = "local://chromium-instance"
RELEASE_STATUS = "REQUEST_RELEASE"


def _random_token(length: int = 13) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass
class ProvisionedSession:
    session_id: str
    context_id: Optional[str]
    region: str


class BaseProvisioner(ABC):
    """Creates, inspects and releases remote browser sessions."""

    is_local = False

    @abstractmethod
    async def create(
        self, region: str, context_id: Optional[str] = None, persist_context: bool = True
    ) -> ProvisionedSession:
        ...

    @abstractmethod
    async def get_debug_url(self, session_id: str) -> str:
        ...

    @abstractmethod
    async def update(self, session_id: str, status: str = RELEASE_STATUS) -> None:
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        ...


class LocalProvisioner(BaseProvisioner):
    """Sessions for browsers launched locally; nothing remote to manage."""

    is_local = True

    async def create(
        self, region: str, context_id: Optional[str] = None, persist_context: bool = True
    ) -> ProvisionedSession:
        session_id = f"local-{_random_token()}"
        logger.info(f"Local mode, created session {session_id}")
        return ProvisionedSession(
            session_id=session_id,
            context_id=context_id or f"ctx-{_random_token()}",
            region=region,
        )

    async def get_debug_url(self, session_id: str) -> str:
        return LOCAL_DEBUG_URL

    async def update(self, session_id: str, status: str = RELEASE_STATUS) -> None:
        return None

    async def delete(self, session_id: str) -> None:
        return None


class BrowserbaseProvisioner(BaseProvisioner):
    """Browserbase REST client."""

    def __init__(
        self,
        api_key: str,
        project_id: str,
        base_url: str = "https://api.browserbase.com",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.project_id = project_id
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = float(timeout_seconds)
        self._transport = transport

    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "X-BB-API-Key": self.api_key,
        }
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            try:
                resp = await client.request(method, f"{self.base_url}{path}", json=body, headers=headers)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                detail = (e.response.text or "").replace("\n", " ").strip()[:200]
                raise ProvisioningFailure(
                    f"Browserbase error ({e.response.status_code}) on {method} {path}: {detail}"
                ) from e
            except httpx.HTTPError as e:
                raise ProvisioningFailure(f"Browserbase unreachable on {method} {path}: {e}") from e
            if not resp.content:
                return {}
            return resp.json()

    async def create(
        self, region: str, context_id: Optional[str] = None, persist_context: bool = True
    ) -> ProvisionedSession:
        if not context_id:
            context = await self._request("POST", "/v1/contexts", {"projectId": self.project_id})
            context_id = context.get("id")
        session = await self._request(
            "POST",
            "/v1/sessions",
            {
                "projectId": self.project_id,
                "browserSettings": {"context": {"id": context_id, "persist": persist_context}},
                "keepAlive": True,
                "region": region,
            },
        )
        session_id = session.get("id")
        if not session_id:
            raise ProvisioningFailure("Browserbase returned a session without id")
        logger.info(f"Created Browserbase session {session_id} in {region}")
        return ProvisionedSession(session_id=session_id, context_id=context_id, region=region)

    async def get_debug_url(self, session_id: str) -> str:
        debug = await self._request("GET", f"/v1/sessions/{session_id}/debug")
        return str(debug.get("debuggerFullscreenUrl") or "")

    async def update(self, session_id: str, status: str = RELEASE_STATUS) -> None:
        await self._request(
            "POST",
            f"/v1/sessions/{session_id}",
            {"projectId": self.project_id, "status": status},
        )

    async def delete(self, session_id: str) -> None:
        # Browserbase sessions cannot be deleted, only released.
        await self.update(session_id, RELEASE_STATUS)


def create_provisioner(config: OperatorConfig) -> BaseProvisioner:
    if config.local_mode:
        return LocalProvisioner()
    config.require_browserbase()
    return BrowserbaseProvisioner(
        api_key=config.browserbase_api_key,
        project_id=config.browserbase_project_id,
        base_url=config.browserbase_base_url,
    )


class SessionService:
    """Opens and ends sessions: remote provisioning plus the local registry."""

    def __init__(self, provisioner: BaseProvisioner, registry: SessionRegistry):
        self.provisioner = provisioner
        self.registry = registry

    async def open(self, timezone: Optional[str] = None, context_id: Optional[str] = None) -> Dict[str, Any]:
        region = select_region(timezone)
        provisioned = await self.provisioner.create(region, context_id=context_id, persist_context=True)
        self.registry.place(provisioned.session_id, provisioned.region, provisioned.context_id)
        debug_url = await self.provisioner.get_debug_url(provisioned.session_id)
        return {
            "sessionId": provisioned.session_id,
            "sessionUrl": debug_url,
            "contextId": provisioned.context_id,
            "region": provisioned.region,
            "isLocalMode": self.provisioner.is_local or provisioned.session_id.startswith("local-"),
        }

    async def end(self, session_id: str) -> None:
        await self.registry.release(session_id)
        if self.provisioner.is_local or session_id.startswith("local-"):
            return
        try:
            await self.provisioner.update(session_id, RELEASE_STATUS)
        except ProvisioningFailure as e:
            logger.error(f"Remote release failed for session {session_id}: {e}")
