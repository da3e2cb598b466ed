"""HTTP client for the remote sync endpoint."""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from golfbuddy.types import RemoteSyncError

from .protocol import (
    Cursors,
    SyncPullRequest,
    SyncPullResponse,
    SyncPushRequest,
    SyncPushResponse,
    SyncStateRequest,
    SyncStateResponse,
)

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class RemoteSyncClient:
    """Async client for ``/sync/state``, ``/sync/push`` and ``/sync/pull``.

    Args:
        base_url: Endpoint root, e.g. ``https://golf.example.com/api``.
        auth_token: Optional bearer token.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "RemoteSyncClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(
        self, path: str, body: Dict[str, Any], response_model: Type[ResponseT], phase: str
    ) -> ResponseT:
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            raise RemoteSyncError(f"{phase} request failed: {e}", phase=phase) from e

        if not response.is_success:
            raise RemoteSyncError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                phase=phase,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteSyncError(
                f"{phase} returned invalid JSON", status_code=response.status_code, phase=phase
            ) from e

        try:
            return response_model.model_validate(payload)
        except ValidationError as e:
            raise RemoteSyncError(
                f"{phase} returned an unexpected body: {e.error_count()} validation error(s)",
                status_code=response.status_code,
                phase=phase,
            ) from e

    async def check_state(self, cursors: Cursors) -> SyncStateResponse:
        request = SyncStateRequest(cursors=cursors)
        return await self._post("/sync/state", request.to_wire(), SyncStateResponse, "state")

    async def push(self, payload: SyncPushRequest) -> SyncPushResponse:
        return await self._post("/sync/push", payload.to_wire(), SyncPushResponse, "push")

    async def pull(self, cursors: Cursors, limit: int) -> SyncPullResponse:
        request = SyncPullRequest(cursors=cursors, limit=limit)
        return await self._post("/sync/pull", request.to_wire(), SyncPullResponse, "pull")

    async def health_check(self) -> bool:
        """True if ``GET /health`` answers 2xx."""
        try:
            response = await self._client.get("/health", timeout=5.0)
        except httpx.HTTPError as e:
            logger.debug(f"Sync endpoint health check failed: {e}")
            return False
        return response.is_success
