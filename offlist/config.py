from __future__ import annotations

import json
import os
import warnings
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("~/.config/offlist/config.json").expanduser()
DEFAULT_PAGE_SIZE = 20
DEFAULT_LIST_ID = "default"
DEFAULT_TIMEOUT_S = 10.0

CONFIG_ENV_OVERRIDES = {
    "db_path": "OFFLIST_DB_PATH",
    "page_size": "OFFLIST_PAGE_SIZE",
    "list_id": "OFFLIST_LIST_ID",
    "timeout_s": "OFFLIST_TIMEOUT_S",
    "url_template": "OFFLIST_URL_TEMPLATE",
    "auth_token": "OFFLIST_AUTH_TOKEN",
}

UrlBuilder = Callable[[int, Any], str]
HeadersProvider = Callable[[], Awaitable[dict[str, str] | None]]
ResponseParser = Callable[[list[Any]], list[dict[str, Any]]]


@dataclass
class ListConfig:
    """Everything a PageLoader needs for one list; validated on construction."""

    url_builder: UrlBuilder
    store: Any
    headers_provider: HeadersProvider | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    sort_key_generator: Callable[[dict[str, Any]], Any] | None = None
    list_id: str = DEFAULT_LIST_ID
    response_parser: ResponseParser | None = None
    timeout_s: float = DEFAULT_TIMEOUT_S
    track_content: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not callable(self.url_builder):
            raise ConfigurationError("url_builder must be callable")
        if self.store is None:
            raise ConfigurationError("store is required")
        if isinstance(self.page_size, bool) or not isinstance(self.page_size, int):
            raise ConfigurationError("page_size must be an int")
        if self.page_size <= 0:
            raise ConfigurationError("page_size must be positive")
        if not isinstance(self.list_id, str) or not self.list_id.strip():
            raise ConfigurationError("list_id must be a non-empty string")
        for name in ("headers_provider", "sort_key_generator", "response_parser"):
            value = getattr(self, name)
            if value is not None and not callable(value):
                raise ConfigurationError(f"{name} must be callable")
        if isinstance(self.timeout_s, bool) or not isinstance(self.timeout_s, (int, float)):
            raise ConfigurationError("timeout_s must be a number")
        if self.timeout_s <= 0:
            raise ConfigurationError("timeout_s must be positive")


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("OFFLIST_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class OfflistConfig:
    db_path: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    list_id: str = DEFAULT_LIST_ID
    timeout_s: float = DEFAULT_TIMEOUT_S
    url_template: str | None = None
    # Sent as a bearer token when set.
    auth_token: str | None = None


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def load_config(path: Path | None = None) -> OfflistConfig:
    cfg = OfflistConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError as exc:
            warnings.warn(
                f"Invalid config file {config_path}: {exc}", RuntimeWarning, stacklevel=2
            )
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: OfflistConfig, data: dict[str, Any]) -> OfflistConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key == "page_size":
            cfg.page_size = _parse_int(value, cfg.page_size, key=key)
            continue
        if key == "timeout_s":
            cfg.timeout_s = _parse_float(value, cfg.timeout_s, key=key)
            continue
        setattr(cfg, key, value)
    return cfg


def _apply_env(cfg: OfflistConfig) -> OfflistConfig:
    return _apply_dict(cfg, get_env_overrides())
