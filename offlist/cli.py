from __future__ import annotations

import json
import logging
from dataclasses import asdict

import typer
from rich import print
from rich.markup import escape

from . import __version__
from .commands.list_cmds import (
    drop_cmd,
    fetch_cmd,
    lists_cmd,
    read_config_or_exit,
    refresh_cmd,
    set_config_cmd,
    show_cmd,
)
from .config import OfflistConfig, get_config_path, get_env_overrides, load_config
from .db import DEFAULT_DB_PATH
from .errors import StorageUnavailable
from .store import SqliteDocumentStore

app = typer.Typer(help="offlist: offline-first paging of remote sorted lists")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _config(page_size: int | None = None, list_id: str | None = None) -> OfflistConfig:
    cfg = load_config()
    if page_size is not None:
        cfg.page_size = page_size
    if list_id:
        cfg.list_id = list_id
    return cfg


def _store(db_path: str | None, cfg: OfflistConfig) -> SqliteDocumentStore:
    try:
        return SqliteDocumentStore(db_path or cfg.db_path or DEFAULT_DB_PATH)
    except StorageUnavailable as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


@app.command()
def fetch(
    url: str = typer.Option(None, help="URL template with {page_size} and {start_key}"),
    pages: int = typer.Option(1, help="Number of pages to load"),
    page_size: int = typer.Option(None, help="Rows per page"),
    list_id: str = typer.Option(None, help="List id"),
    splices: bool = typer.Option(False, help="Print splice deltas as they happen"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Load pages, from the local index when possible."""

    cfg = _config(page_size, list_id)
    store = _store(db_path, cfg)
    try:
        fetch_cmd(store, cfg, url=url, pages=pages, show_splices=splices)
    finally:
        store.close()


@app.command()
def refresh(
    url: str = typer.Option(None, help="URL template with {page_size} and {start_key}"),
    loaded: int = typer.Option(0, help="Items already seen by the client"),
    page_size: int = typer.Option(None, help="Rows per page"),
    list_id: str = typer.Option(None, help="List id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Re-sync the range seen so far with the remote list."""

    cfg = _config(page_size, list_id)
    store = _store(db_path, cfg)
    try:
        refresh_cmd(store, cfg, url=url, loaded=loaded)
    finally:
        store.close()


@app.command()
def show(
    list_id: str = typer.Option(None, help="List id"),
    limit: int = typer.Option(50, help="Entries to print"),
    as_json: bool = typer.Option(False, "--json", help="Print the index document as JSON"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show the local ordered index of a list."""

    cfg = _config(list_id=list_id)
    store = _store(db_path, cfg)
    try:
        show_cmd(store, list_id=cfg.list_id, limit=limit, as_json=as_json)
    finally:
        store.close()


@app.command("lists")
def lists(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """List stored lists."""

    cfg = _config()
    store = _store(db_path, cfg)
    try:
        lists_cmd(store)
    finally:
        store.close()


@app.command()
def drop(
    list_id: str = typer.Option(None, help="List id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Delete a list's local index."""

    cfg = _config(list_id=list_id)
    store = _store(db_path, cfg)
    try:
        drop_cmd(store, list_id=cfg.list_id)
    finally:
        store.close()


@app.command("config")
def show_config(
    set_values: list[str] = typer.Option(None, "--set", help="Write KEY=VALUE to the config file"),
    unset: list[str] = typer.Option(None, "--unset", help="Remove KEY from the config file"),
) -> None:
    """Print the effective configuration, or edit the config file."""

    if set_values or unset:
        set_config_cmd(set_values or [], unset or [])
        return
    read_config_or_exit()
    cfg = asdict(load_config())
    if cfg.get("auth_token"):
        cfg["auth_token"] = "***"
    overrides = sorted(get_env_overrides())
    print(f"config: {get_config_path()}")
    print(f"env overrides: {', '.join(overrides) or 'none'}")
    print(escape(json.dumps(cfg, indent=2)))


@app.command()
def version() -> None:
    """Print the offlist version."""

    print(__version__)
