"""
Shared plumbing for feature gateway clients.

Every gateway call is authenticated with a short-lived bearer token signed
with the gateway's own secret and scoped to that gateway.
"""

import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx
import jwt

from entitlement_sync.entitlements.errors import GatewayError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_TOKEN_TTL_MINUTES = 5
ENTITLEMENT_PATH = "/gateway/entitlement"


@dataclass(frozen=True)
class GatewayTarget:
    """Identity of the user whose entitlement a gateway call changes."""
    uuid: Optional[str]
    customer_id: Optional[str] = None
    email: Optional[str] = None


class GatewayTokenSigner:
    """
    Signs gateway bearer tokens with PyJWT.

    RS256 secrets are base64-encoded PEM private keys. HS256 secrets are used
    as-is (development only).
    """

    def __init__(
        self,
        secret: str,
        scope: str,
        algorithm: str = "RS256",
        ttl_minutes: int = DEFAULT_TOKEN_TTL_MINUTES,
    ):
        if not secret:
            raise ValueError(f"Gateway secret is required for {scope}")
        self.scope = scope
        self.algorithm = algorithm
        self.ttl = timedelta(minutes=ttl_minutes)
        if algorithm.startswith("RS") or algorithm.startswith("ES"):
            self._key = base64.b64decode(secret).decode("utf-8")
        else:
            self._key = secret

    def sign(self) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "iat": now,
            "exp": now + self.ttl,
            "scope": self.scope,
        }
        return jwt.encode(payload, self._key, algorithm=self.algorithm)


class GatewayClient:
    """
    Base async client for a feature gateway.

    Subclasses set `name` and implement apply/revoke on top of _request.
    """

    name = "gateway"

    def __init__(
        self,
        base_url: str,
        signer: GatewayTokenSigner,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError(f"{self.name} gateway URL is required")
        self.base_url = base_url.rstrip("/")
        self.signer = signer
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        ok_statuses: tuple = (),
    ) -> httpx.Response:
        """
        Make an authenticated request.

        Args:
            ok_statuses: Non-2xx statuses that mean "already in that state"

        Raises:
            GatewayError: On transport errors and unexpected statuses
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = {"Authorization": f"Bearer {self.signer.sign()}"}

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json,
                params=params,
                headers=headers,
            )
        except httpx.RequestError as e:
            raise GatewayError(
                f"{self.name} gateway unreachable: {e}",
                gateway=self.name,
                endpoint=endpoint,
            ) from e

        if response.is_success:
            return response

        if response.status_code in ok_statuses:
            logger.info(
                "Gateway reports target already in requested state",
                extra={"gateway": self.name, "endpoint": endpoint, "status_code": response.status_code},
            )
            return response

        raise GatewayError(
            f"{self.name} gateway returned {response.status_code}",
            gateway=self.name,
            status_code=response.status_code,
            endpoint=endpoint,
            response=response.text[:500],
        )
