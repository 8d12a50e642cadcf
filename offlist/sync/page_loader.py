from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

import httpx

from ..collate import compare
from ..config import ListConfig
from ..errors import RemoteFetchError
from ..store import Item
from . import http_client
from .merge import ListSyncEngine, MergeResult, SpliceObserver

logger = logging.getLogger(__name__)


def default_response_parser(rows: list[Any]) -> list[Item]:
    parsed: list[Item] = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning("page row skipped: not an object")
            continue
        item = dict(row)
        raw_id = item.get("id", item.get("_id"))
        if raw_id is not None:
            item["id"] = str(raw_id)
        parsed.append(item)
    return parsed


class PageLoader:
    """Pages through a remote sorted list, serving seen pages from the local index."""

    def __init__(
        self,
        config: ListConfig,
        *,
        client: httpx.AsyncClient | None = None,
        engine: ListSyncEngine | None = None,
    ):
        self.config = config
        self.page_size = config.page_size
        self.engine = engine or ListSyncEngine(
            config.store,
            list_id=config.list_id,
            sort_key_generator=config.sort_key_generator,
            track_content=config.track_content,
        )
        self.response_parser = config.response_parser or default_response_parser
        self.end_of_list = False
        self.last_merge: MergeResult | None = None
        self._items: list[Item] = []
        self._client = client
        self._owns_client = client is None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, **kwargs: Any) -> PageLoader:
        client = kwargs.pop("client", None)
        return cls(ListConfig(**kwargs), client=client)

    @property
    def items(self) -> list[Item]:
        return list(self._items)

    def splice_observer(self, callback: SpliceObserver) -> None:
        self.engine.splice_observer(callback)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_s, follow_redirects=True)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> PageLoader:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _start_key(self) -> Any:
        if not self._items:
            return None
        return self.engine.key_for(self._items[-1])

    async def _headers(self) -> dict[str, str] | None:
        provider = self.config.headers_provider
        if provider is None:
            return None
        try:
            return await provider()
        except Exception as exc:
            raise RemoteFetchError(f"header resolution failed: {exc}") from exc

    async def load_next_page(self) -> list[Item]:
        async with self._lock:
            await self.engine.open()
            start_key = self._start_key()
            entries = self.engine.page_entries(self.page_size, start_key)
            page = await self.engine.read_page(self.page_size, start_key)
            if page:
                dangling = [entry.id for entry, item in zip(entries, page) if item is None]
                if dangling:
                    logger.warning(
                        "dropping %s dangling entries list_id=%s",
                        len(dangling),
                        self.config.list_id,
                    )
                    await self.engine.remove_entries(dangling)
                found = [item for item in page if item is not None]
                if found:
                    self._items.extend(found)
                    return found
            return await self._load_page_from_server()

    async def refresh(self) -> int:
        """Re-fetch every page seen so far from the start, merging each one."""

        async with self._lock:
            pages = max(1, math.ceil(len(self._items) / self.page_size))
            self._items = []
            self.end_of_list = False
            fetched = 0
            for _ in range(pages):
                await self._load_page_from_server()
                fetched += 1
                if self.end_of_list:
                    break
            logger.info(
                "refresh list_id=%s pages=%s items=%s",
                self.config.list_id,
                fetched,
                len(self._items),
            )
            return fetched

    async def _load_page_from_server(self) -> list[Item]:
        start_key = self._start_key()
        url = self.config.url_builder(self.page_size, start_key)
        headers = await self._headers()
        client = await self._get_client()
        rows = await http_client.fetch_rows(client, url, headers=headers)
        try:
            parsed = self.response_parser(rows)
        except (TypeError, ValueError, KeyError) as exc:
            raise RemoteFetchError(f"response parse failed: {exc}", url=url) from exc
        end_of_list = len(parsed) < self.page_size
        if start_key is not None:
            # Inclusive cursors repeat the boundary row.
            parsed = [row for row in parsed if compare(self.engine.key_for(row), start_key) > 0]
        self._items.extend(parsed)
        self.last_merge = await self.engine.upsert(parsed, start_key, end_of_list)
        self.end_of_list = end_of_list
        logger.debug(
            "page loaded list_id=%s rows=%s end_of_list=%s",
            self.config.list_id,
            len(parsed),
            end_of_list,
        )
        return parsed
