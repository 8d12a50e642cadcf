from __future__ import annotations

import asyncio
import json
from typing import Any

import typer
from rich import print
from rich.markup import escape

from offlist.config import (
    ListConfig,
    OfflistConfig,
    get_config_path,
    read_config_file,
    write_config_file,
)
from offlist.errors import OfflistError
from offlist.store import SqliteDocumentStore
from offlist.sync import PageLoader
from offlist.sync.http_client import build_template_url


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def write_config_or_exit(data: dict[str, Any]) -> None:
    try:
        write_config_file(data)
    except OSError as exc:
        print(f"[red]Failed to write config: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def _config_value(key: str, raw: str) -> Any:
    if key == "page_size":
        value = int(raw)
        if value <= 0:
            raise ValueError("page_size must be positive")
        return value
    if key == "timeout_s":
        value = float(raw)
        if value <= 0:
            raise ValueError("timeout_s must be positive")
        return value
    return raw


def set_config_cmd(pairs: list[str], unset: list[str]) -> None:
    """Update the config file with KEY=VALUE pairs and removed keys."""

    data = read_config_or_exit()
    fields = set(OfflistConfig.__dataclass_fields__)
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or key not in fields:
            print(f"[red]Unknown config setting: {escape(pair)}[/red]")
            raise typer.Exit(code=1)
        try:
            data[key] = _config_value(key, raw.strip())
        except ValueError as exc:
            print(f"[red]Invalid value for {key}: {escape(str(exc))}[/red]")
            raise typer.Exit(code=1) from exc
    for key in unset:
        if key not in fields:
            print(f"[red]Unknown config setting: {escape(key)}[/red]")
            raise typer.Exit(code=1)
        data.pop(key, None)
    write_config_or_exit(data)
    print(f"Saved {escape(str(get_config_path()))}")


def _require_url(url: str | None, cfg: OfflistConfig) -> str:
    template = url or cfg.url_template
    if not template:
        print("[red]No URL template: pass --url or set OFFLIST_URL_TEMPLATE[/red]")
        raise typer.Exit(code=1)
    return template


def _loader(store: SqliteDocumentStore, cfg: OfflistConfig, template: str) -> PageLoader:
    token = cfg.auth_token

    async def _headers() -> dict[str, str] | None:
        if not token:
            return None
        return {"Authorization": f"Bearer {token}"}

    return PageLoader(
        ListConfig(
            url_builder=lambda page_size, start_key: build_template_url(
                template, page_size, start_key
            ),
            store=store,
            headers_provider=_headers,
            page_size=cfg.page_size,
            list_id=cfg.list_id,
            timeout_s=cfg.timeout_s,
        )
    )


def _log_splice(start: int, removed: int, inserted: list[dict[str, Any]]) -> None:
    ids = ", ".join(str(item.get("id")) for item in inserted)
    print(f"[dim]splice at={start} removed={removed} inserted=({escape(ids)})[/dim]")


def fetch_cmd(
    store: SqliteDocumentStore,
    cfg: OfflistConfig,
    *,
    url: str | None,
    pages: int,
    show_splices: bool,
) -> None:
    """Load pages (local first, remote on a miss) and print their ids."""

    template = _require_url(url, cfg)

    async def _run() -> list[list[dict[str, Any]]]:
        async with _loader(store, cfg, template) as loader:
            if show_splices:
                loader.splice_observer(_log_splice)
            loaded: list[list[dict[str, Any]]] = []
            for _ in range(pages):
                page = await loader.load_next_page()
                loaded.append(page)
                if not page or loader.end_of_list:
                    break
            return loaded

    try:
        loaded = asyncio.run(_run())
    except OfflistError as exc:
        print(f"[red]Fetch failed: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    for number, page in enumerate(loaded, start=1):
        ids = ", ".join(str(item.get("id")) for item in page)
        print(f"page {number}: {len(page)} items ({escape(ids)})")


def refresh_cmd(
    store: SqliteDocumentStore,
    cfg: OfflistConfig,
    *,
    url: str | None,
    loaded: int,
) -> None:
    """Re-fetch the already seen range so upstream inserts/removals are merged."""

    template = _require_url(url, cfg)

    async def _run() -> tuple[int, int]:
        async with _loader(store, cfg, template) as loader:
            loader.splice_observer(_log_splice)
            # Rebuild the page cursor from the local index before refreshing.
            remaining = loaded
            while remaining > 0:
                page = await loader.load_next_page()
                if not page:
                    break
                remaining -= len(page)
            fetched = await loader.refresh()
            return fetched, loader.engine.item_count

    try:
        fetched, size = asyncio.run(_run())
    except OfflistError as exc:
        print(f"[red]Refresh failed: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"Refreshed {fetched} pages; list {cfg.list_id} now has {size} entries")


def show_cmd(store: SqliteDocumentStore, *, list_id: str, limit: int, as_json: bool) -> None:
    """Print the local ordered index of a list."""

    async def _run() -> tuple[list[Any], int]:
        stored = await store.get_index(list_id)
        if stored is None:
            return [], 0
        items = stored["doc"].get("items") or []
        return items, int(stored["rev"])

    try:
        entries, rev = asyncio.run(_run())
    except OfflistError as exc:
        print(f"[red]Cannot read index: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    if as_json:
        payload = {"listId": list_id, "rev": rev, "items": entries}
        print(escape(json.dumps(payload, ensure_ascii=False, indent=2)))
        return
    if not entries:
        print(f"No local index for list {list_id}")
        return
    print(f"[bold]{escape(list_id)}[/bold] rev={rev} size={len(entries)}")
    for pos, entry in enumerate(entries[:limit]):
        sort_key = json.dumps(entry.get("sortKey"), ensure_ascii=False)
        print(f"{pos:>5}  {escape(str(entry.get('id')))}  {escape(sort_key)}")
    if len(entries) > limit:
        print(f"... (+{len(entries) - limit} more)")


def lists_cmd(store: SqliteDocumentStore) -> None:
    """List every index document in the store."""

    rows = asyncio.run(store.list_indexes())
    if not rows:
        print("No lists")
        return
    for row in rows:
        print(f"- {row['list_id']} size={row['size']} rev={row['rev']} updated={row['updated_at']}")


def drop_cmd(store: SqliteDocumentStore, *, list_id: str) -> None:
    """Delete a list's index document (items stay in the store)."""

    dropped = asyncio.run(store.drop_index(list_id))
    if not dropped:
        print(f"No local index for list {list_id}")
        return
    print(f"Dropped list {list_id}")
