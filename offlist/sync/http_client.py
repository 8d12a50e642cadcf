from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import RemoteFetchError

logger = logging.getLogger(__name__)


def encode_start_key(start_key: Any) -> str:
    if start_key is None:
        return ""
    return quote(json.dumps(start_key, ensure_ascii=False, separators=(",", ":")), safe="")


def build_template_url(template: str, page_size: int, start_key: Any) -> str:
    """Expand ``{page_size}`` and ``{start_key}`` placeholders in a URL template."""

    return template.format(page_size=page_size, start_key=encode_start_key(start_key))


def _error_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        snippet = response.text[:240].strip()
        return snippet or None
    if isinstance(payload, dict):
        error = payload.get("error")
        reason = payload.get("reason")
        if isinstance(error, str) and isinstance(reason, str):
            return f"{error}:{reason}"
        if isinstance(error, str):
            return error
    return None


async def fetch_rows(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: dict[str, str] | None = None,
) -> list[Any]:
    request_headers = {"Accept": "application/json"}
    if headers:
        request_headers.update(headers)
    try:
        response = await client.get(url, headers=request_headers)
    except httpx.HTTPError as exc:
        logger.error("page fetch failed url=%s: %s", url, exc)
        raise RemoteFetchError(f"page fetch failed: {exc}", url=url) from exc

    if response.status_code != 200:
        detail = _error_detail(response)
        suffix = f" ({response.status_code}: {detail})" if detail else f" ({response.status_code})"
        logger.error("page fetch failed url=%s status=%s", url, response.status_code)
        raise RemoteFetchError(
            f"page fetch failed{suffix}", url=url, status=response.status_code
        )

    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RemoteFetchError(
            "page fetch returned non-json body", url=url, status=response.status_code
        ) from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("rows"), list):
        raise RemoteFetchError(
            "page fetch returned no rows list", url=url, status=response.status_code
        )
    return payload["rows"]
