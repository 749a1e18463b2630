import logging
from typing import Any, List, Set, Tuple

import httpx
from pydantic import ValidationError as SchemaError

from ..errors import HistoryServiceError
from ..models import HistoryRecord

logger = logging.getLogger(__name__)


class HistoryStore:
    """Local, read-only copy of the prediction history kept by the remote service.

    Not a cache: `refresh` replaces the whole collection with what the server
    returns, and `delete` only touches the local copy after the server
    acknowledges it.

    Acknowledged deletes are remembered in `_deleted_ids` for the life of the
    store, so a stale fetch cannot bring a record back. The set only grows
    by one id per delete made in this session.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self._records: Tuple[HistoryRecord, ...] = ()
        self._deleted_ids: Set[int] = set()

    @property
    def records(self) -> Tuple[HistoryRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return any(r.id == record_id for r in self._records)

    async def refresh(self) -> Tuple[HistoryRecord, ...]:
        url = f"{self.base_url}/history"
        try:
            resp = await self.client.get(url)
            resp.raise_for_status()
            raw = resp.json()
        except httpx.HTTPStatusError as e:
            raise HistoryServiceError("Failed to fetch history", status_code=e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            raise HistoryServiceError(f"Failed to fetch history: {e}") from e

        if not isinstance(raw, list):
            raise HistoryServiceError("History service returned an unexpected response")
        records = self._parse(raw)
        # Server order is unspecified; keep a stable base order by id
        records.sort(key=lambda r: r.id)
        self._records = tuple(records)
        logger.debug("[history] refreshed %d records", len(self._records))
        return self._records

    def _parse(self, raw: List[Any]) -> List[HistoryRecord]:
        records = []
        for item in raw:
            try:
                record = HistoryRecord.model_validate(item)
            except SchemaError as e:
                logger.warning("[history] skipping malformed record: %s", e)
                continue
            if record.id in self._deleted_ids:
                logger.warning("[history] server still lists deleted record %s; ignoring it", record.id)
                continue
            records.append(record)
        return records

    async def delete(self, record_id: int) -> None:
        url = f"{self.base_url}/delete-history/{record_id}"
        try:
            resp = await self.client.delete(url)
        except httpx.HTTPError as e:
            raise HistoryServiceError(f"Failed to delete record: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.is_error or not body.get("success"):
            message = str(body.get("error") or "Failed to delete record")
            logger.warning("[history] delete of %s rejected (%s): %s", record_id, resp.status_code, message)
            raise HistoryServiceError(message, status_code=resp.status_code)

        self._deleted_ids.add(record_id)
        self._records = tuple(r for r in self._records if r.id != record_id)
        logger.info("[history] deleted record %s", record_id)
