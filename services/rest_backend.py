"""PostgREST-style backend performing the remote create/update/delete calls."""
from __future__ import annotations

from functools import partial
from typing import Any, Dict, Optional

import httpx

from core.errors import BackendError
from core.settings import BACKEND
from models.operation import EntityType, OperationKind
from models.payloads import DeletePayload, MutationPayload, UpdatePayload
from services.dispatch import BackendDispatcher


TABLES = {
    EntityType.PROJECT: "projects",
    EntityType.TASK: "tasks",
    EntityType.NOTE: "notes",
    EntityType.RESOURCE: "resources",
    EntityType.REMINDER: "reminders",
}


def _error_from_response(response: httpx.Response) -> BackendError:
    code = None
    details = None
    message = response.reason_phrase or "Request failed"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = body.get("code")
        details = body.get("details")
        message = body.get("message") or message
    return BackendError(response.status_code, message, code=code, details=details)


class RestBackend:
    """Client for the backend's REST tables.

    Uses a persistent ``httpx.AsyncClient`` created on first use unless one is
    injected.
    """

    def __init__(
        self,
        base_url: str = BACKEND.base_url,
        api_key: Optional[str] = BACKEND.api_key,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = BACKEND.timeout_sec,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _single(response: httpx.Response) -> Optional[Dict[str, Any]]:
        if response.is_error:
            raise _error_from_response(response)
        if not response.content:
            return None
        data = response.json()
        if isinstance(data, list):
            return data[0] if data else None
        return data if isinstance(data, dict) else None

    # ------------------------------------------------------------------
    async def insert(self, entity_type: EntityType, payload: MutationPayload) -> Optional[Dict[str, Any]]:
        client = await self._get_client()
        response = await client.post(
            f"/rest/v1/{TABLES[entity_type]}",
            json=[payload.model_dump(mode="json")],
            headers=self._headers(),
        )
        return self._single(response)

    async def update(self, entity_type: EntityType, payload: UpdatePayload) -> Optional[Dict[str, Any]]:
        client = await self._get_client()
        response = await client.patch(
            f"/rest/v1/{TABLES[entity_type]}",
            params={"id": f"eq.{payload.id}"},
            json=payload.changes(),
            headers=self._headers(),
        )
        return self._single(response)

    async def delete(self, entity_type: EntityType, payload: DeletePayload) -> Optional[Dict[str, Any]]:
        client = await self._get_client()
        response = await client.delete(
            f"/rest/v1/{TABLES[entity_type]}",
            params={"id": f"eq.{payload.id}"},
            headers=self._headers(),
        )
        self._single(response)
        return None

    def register_with(self, dispatcher: BackendDispatcher) -> BackendDispatcher:
        for entity_type in EntityType:
            dispatcher.register(entity_type, OperationKind.CREATE, partial(self.insert, entity_type))
            dispatcher.register(entity_type, OperationKind.UPDATE, partial(self.update, entity_type))
            dispatcher.register(entity_type, OperationKind.DELETE, partial(self.delete, entity_type))
        return dispatcher


__all__ = ["RestBackend", "TABLES"]
