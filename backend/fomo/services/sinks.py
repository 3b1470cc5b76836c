"""Remote persistence adapters for the optimistic mutation engine."""
import asyncio
import logging
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session

from fomo.config import settings
from fomo.schemas.response import ResponseCreate, ResponseHistoryEntry
from fomo.services import response_service

logger = logging.getLogger(__name__)


class HttpResponseSink:
    """POST each entry to the persistence endpoint of a fomo API."""

    def __init__(
        self,
        base_url: str = settings.REMOTE_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.REMOTE_TIMEOUT_SECONDS,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def submit(self, entry: ResponseHistoryEntry) -> None:
        response = await self._client.post("/api/responses/", json=entry.to_wire())
        response.raise_for_status()
        logger.info("Persisted response %s remotely (%d)", entry.id, response.status_code)

    async def aclose(self) -> None:
        await self._client.aclose()


class DatabaseResponseSink:
    """Write entries straight to the response_history table (same process)."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def submit(self, entry: ResponseHistoryEntry) -> None:
        # Session work is blocking; keep it off the event loop.
        await asyncio.to_thread(self._record, entry)

    def _record(self, entry: ResponseHistoryEntry) -> None:
        db = self.session_factory()
        try:
            response_service.record_response(db, ResponseCreate(**entry.model_dump()))
        finally:
            db.close()
