from __future__ import annotations

"""Usage analytics: in-process counters, optionally forwarded to Google Analytics."""

import asyncio
import logging
import uuid
from typing import Dict, Tuple

import httpx

__all__ = ["Analytics", "COLLECT_URL"]

logger = logging.getLogger(__name__)

COLLECT_URL = "https://www.google-analytics.com/collect"


class Analytics:
    def __init__(
        self,
        tracking_id: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        collect_url: str = COLLECT_URL,
    ) -> None:
        self.tracking_id = tracking_id
        self.collect_url = collect_url
        self._client_id = str(uuid.uuid4())
        self._client = client
        self._counters: Dict[Tuple[str, str], int] = {}
        self._pending: set[asyncio.Task] = set()

    def event(self, category: str, action: str) -> None:
        """Record an event; never raises and never blocks the caller."""
        key = (category, action)
        self._counters[key] = self._counters.get(key, 0) + 1
        if not self.tracking_id:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._forward(category, action))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def snapshot(self) -> Dict[str, int]:
        return {f"{category}:{action}": count for (category, action), count in self._counters.items()}

    async def _forward(self, category: str, action: str) -> None:
        params = {
            "v": "1",
            "tid": self.tracking_id,
            "cid": self._client_id,
            "t": "event",
            "ec": category,
            "ea": action,
        }
        try:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=5.0)
            await self._client.post(self.collect_url, data=params)
        except httpx.HTTPError as exc:
            logger.debug("analytics event %s/%s not sent: %s", category, action, exc)

    async def aclose(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._client is not None:
            await self._client.aclose()
