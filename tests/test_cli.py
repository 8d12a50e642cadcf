import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from typer.testing import CliRunner

from offlist import __version__
from offlist.cli import app
from offlist.config import read_config_file

runner = CliRunner()

TEMPLATE = "https://api.test/rows?limit={page_size}&after={start_key}"
ROWS = [{"id": name, "k": n} for n, name in enumerate("abcde", start=1)]


@pytest.fixture
def fake_api(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    state: dict[str, Any] = {"rows": list(ROWS), "status": 200, "requests": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"] += 1
        if state["status"] != 200:
            return httpx.Response(state["status"], json={"error": "unavailable"})
        limit = int(request.url.params["limit"])
        raw = request.url.params.get("after") or ""
        after = json.loads(raw) if raw else None
        # Default sort key is the item id.
        rows = [row for row in state["rows"] if after is None or row["id"] > after]
        return httpx.Response(200, json={"rows": rows[:limit]})

    real_client = httpx.AsyncClient

    def _client(**kwargs: Any) -> httpx.AsyncClient:
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _client)
    return state


def _db(tmp_path: Path) -> list[str]:
    return ["--db-path", str(tmp_path / "offlist.sqlite")]


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("fetch", "refresh", "show", "lists", "drop", "config", "version"):
        assert command in result.stdout


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_fetch_requires_url_template(tmp_path: Path) -> None:
    result = runner.invoke(app, ["fetch", *_db(tmp_path)])
    assert result.exit_code == 1
    assert "No URL template" in result.stdout


def test_fetch_show_lists_drop(tmp_path: Path, fake_api: dict[str, Any]) -> None:
    result = runner.invoke(
        app, ["fetch", "--url", TEMPLATE, "--pages", "2", "--page-size", "2", *_db(tmp_path)]
    )
    assert result.exit_code == 0, result.stdout
    assert "page 1: 2 items (a, b)" in result.stdout
    assert "page 2: 2 items (c, d)" in result.stdout
    assert fake_api["requests"] == 2

    result = runner.invoke(app, ["show", *_db(tmp_path)])
    assert result.exit_code == 0
    assert "default rev=2 size=4" in result.stdout

    result = runner.invoke(app, ["show", "--json", *_db(tmp_path)])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [entry["id"] for entry in payload["items"]] == ["a", "b", "c", "d"]

    result = runner.invoke(app, ["lists", *_db(tmp_path)])
    assert result.exit_code == 0
    assert "- default size=4 rev=2" in result.stdout

    result = runner.invoke(app, ["drop", *_db(tmp_path)])
    assert result.exit_code == 0
    assert "Dropped list default" in result.stdout

    result = runner.invoke(app, ["show", *_db(tmp_path)])
    assert "No local index for list default" in result.stdout


def test_second_fetch_is_served_locally(tmp_path: Path, fake_api: dict[str, Any]) -> None:
    args = ["fetch", "--url", TEMPLATE, "--page-size", "2", *_db(tmp_path)]
    assert runner.invoke(app, args).exit_code == 0
    result = runner.invoke(app, args)
    assert result.exit_code == 0
    assert "page 1: 2 items (a, b)" in result.stdout
    assert fake_api["requests"] == 1


def test_refresh_merges_upstream_removal(tmp_path: Path, fake_api: dict[str, Any]) -> None:
    db = _db(tmp_path)
    fetched = runner.invoke(
        app, ["fetch", "--url", TEMPLATE, "--pages", "2", "--page-size", "2", *db]
    )
    assert fetched.exit_code == 0
    fake_api["rows"] = [row for row in ROWS if row["id"] != "b"]

    result = runner.invoke(
        app, ["refresh", "--url", TEMPLATE, "--loaded", "4", "--page-size", "2", *db]
    )

    assert result.exit_code == 0, result.stdout
    assert "splice at=1 removed=1" in result.stdout
    assert "Refreshed 2 pages; list default now has 4 entries" in result.stdout


def test_fetch_failure_exits_nonzero(tmp_path: Path, fake_api: dict[str, Any]) -> None:
    fake_api["status"] = 503
    result = runner.invoke(app, ["fetch", "--url", TEMPLATE, *_db(tmp_path)])
    assert result.exit_code == 1
    assert "Fetch failed" in result.stdout


def test_lists_empty_database(tmp_path: Path) -> None:
    result = runner.invoke(app, ["lists", *_db(tmp_path)])
    assert result.exit_code == 0
    assert "No lists" in result.stdout


def test_config_masks_auth_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OFFLIST_AUTH_TOKEN", "secret")
    monkeypatch.setenv("OFFLIST_LIST_ID", "feed")
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0
    assert '"auth_token": "***"' in result.stdout
    assert '"list_id": "feed"' in result.stdout
    assert "env overrides: auth_token, list_id" in result.stdout
    assert "secret" not in result.stdout


def test_config_rejects_invalid_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "bad.json"
    config_path.write_text("{nope")
    monkeypatch.setenv("OFFLIST_CONFIG", str(config_path))
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 1
    assert "Invalid config file" in result.stdout


def test_config_set_and_unset_write_the_config_file() -> None:
    result = runner.invoke(
        app,
        ["config", "--set", "page_size=50", "--set", "url_template=https://api.test/{start_key}"],
    )
    assert result.exit_code == 0, result.stdout
    assert "Saved" in result.stdout
    assert read_config_file() == {
        "page_size": 50,
        "url_template": "https://api.test/{start_key}",
    }

    shown = runner.invoke(app, ["config"])
    assert '"page_size": 50' in shown.stdout
    assert "env overrides: none" in shown.stdout

    result = runner.invoke(app, ["config", "--unset", "url_template"])
    assert result.exit_code == 0
    assert read_config_file() == {"page_size": 50}


@pytest.mark.parametrize(
    ("args", "message"),
    [
        (["--set", "colour=blue"], "Unknown config setting"),
        (["--set", "page_size"], "Unknown config setting"),
        (["--set", "page_size=zero"], "Invalid value for page_size"),
        (["--set", "timeout_s=-1"], "Invalid value for timeout_s"),
        (["--unset", "colour"], "Unknown config setting"),
    ],
)
def test_config_set_rejects_bad_input(args: list[str], message: str) -> None:
    result = runner.invoke(app, ["config", *args])
    assert result.exit_code == 1
    assert message in result.stdout
    assert read_config_file() == {}
