import logging
from typing import Any, Dict, List, Optional

import httpx

from posledger.core.config import ACCOUNT_HEADER, REMOTE_API_URL, REMOTE_TIMEOUT
from posledger.core.exceptions import RemoteStoreError
from posledger.schemas.sync import BatchOperation

log = logging.getLogger("remote_store")


class RemoteStore:
    """HTTP client for the durable store. Every call is scoped by the account header."""

    def __init__(
        self,
        account_id: str,
        base_url: str = REMOTE_API_URL,
        timeout: float = REMOTE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_id = account_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={ACCOUNT_HEADER: account_id},
        )

    async def __aenter__(self) -> "RemoteStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            raise RemoteStoreError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response.json().get("data")

    # --- per-collection surface ---

    async def fetch_all(self, collection: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/api/{collection}")

    async def upsert(self, collection: str, record: Dict[str, Any]) -> None:
        await self._request("POST", f"/api/{collection}", json=record)

    async def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> None:
        await self._request("PUT", f"/api/{collection}/{record_id}", json=changes)

    async def delete(self, collection: str, record_id: str) -> None:
        await self._request("DELETE", f"/api/{collection}/{record_id}")

    async def adjust(self, record_id: str, delta: float, floor: Optional[float] = None) -> None:
        await self._request("POST", f"/api/ingredients/{record_id}/adjust", json={"delta": delta, "floor": floor})

    async def execute(self, op: BatchOperation) -> None:
        """Sends a single operation through its per-collection endpoint."""
        if op.action == "upsert":
            await self.upsert(op.collection, {**op.data, "id": op.id})
        elif op.action == "update":
            await self.update(op.collection, op.id, op.data)
        elif op.action == "delete":
            await self.delete(op.collection, op.id)
        elif op.action == "adjust":
            await self.adjust(op.id, op.delta, op.floor)

    # --- bulk surface ---

    async def apply_batch(self, batch_id: str, operations: List[BatchOperation]) -> bool:
        data = await self._request(
            "POST",
            "/api/batch",
            json={"batch_id": batch_id, "operations": [op.model_dump(mode="json") for op in operations]},
        )
        return bool(data and data.get("applied"))

    async def migrate(self, snapshot: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
        return await self._request("POST", "/api/migrate", json={"account_id": self.account_id, **snapshot})
