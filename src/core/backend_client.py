"""
REST backend client
Submits queued mutations one request per operation and handles
password sign-in and role lookup for the session layer
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from src.core.models import QueueOperation, OperationKind

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1/"
AUTH_PREFIX = "/auth/v1/"


class BackendError(Exception):
    """Base class for backend failures"""


class BackendTransportError(BackendError):
    """Backend unreachable or the request timed out"""


class BackendRejectedError(BackendError):
    """Backend answered with an error status"""

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"Backend rejected request with {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class AuthenticationFailed(BackendError):
    """Sign-in rejected by the backend"""


class BackendClient:
    """httpx-based client for the REST backend"""

    def __init__(self, base_url: str, api_key: str = "", timeout_seconds: Optional[float] = 30.0,
                 role_lookup_timeout: float = 2.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.role_lookup_timeout = role_lookup_timeout
        self.access_token: Optional[str] = None

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            transport=transport
        )

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = access_token or self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise BackendTransportError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise BackendRejectedError(response.status_code, response.text[:500])
        return response

    async def submit(self, operation: QueueOperation):
        """Deliver one queued mutation; raises BackendError on failure"""
        path = f"{REST_PREFIX}{operation.resource}"

        if operation.kind is OperationKind.CREATE:
            # Upsert so a redelivered create lands on the same row
            headers = self._headers()
            headers["Prefer"] = "resolution=merge-duplicates,return=minimal"
            await self._request("POST", path, json=operation.payload, headers=headers)
        else:
            record_id = operation.payload.get('id')
            if not record_id:
                raise BackendRejectedError(400, f"{operation.kind.value} requires payload id")

            params = {"id": f"eq.{record_id}"}
            if operation.kind is OperationKind.UPDATE:
                await self._request("PATCH", path, params=params, json=operation.payload,
                                    headers=self._headers())
            else:
                await self._request("DELETE", path, params=params, headers=self._headers())

        logger.debug(f"Submitted {operation.kind.value} {operation.resource} ({operation.id})")

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """Password sign-in; returns the backend session payload"""
        try:
            response = await self._request(
                "POST",
                f"{AUTH_PREFIX}token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=self._headers()
            )
        except BackendRejectedError as e:
            if e.status_code in (400, 401, 403):
                raise AuthenticationFailed("Invalid login credentials") from e
            raise

        session = response.json()
        self.access_token = session.get('access_token')
        return session

    async def fetch_user_role(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Role lookup bounded by ``role_lookup_timeout``; None on timeout or miss"""
        try:
            response = await asyncio.wait_for(
                self._request(
                    "GET",
                    f"{REST_PREFIX}user_roles",
                    params={"select": "role,branch_id", "user_id": f"eq.{user_id}", "limit": "1"},
                    headers=self._headers()
                ),
                timeout=self.role_lookup_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Role lookup for {user_id} timed out")
            return None
        except BackendError as e:
            logger.warning(f"Role lookup for {user_id} failed: {e}")
            return None

        rows = response.json()
        if isinstance(rows, list):
            return rows[0] if rows else None
        return rows or None

    async def ping(self) -> bool:
        """Reachability probe; any HTTP answer counts as reachable"""
        try:
            await self._client.get(REST_PREFIX, headers=self._headers())
            return True
        except httpx.TransportError:
            return False

    def sign_out(self):
        self.access_token = None

    async def close(self):
        await self._client.aclose()
