"""
Shared HTTP client and raw JSON forwarding to the completion API.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping

import httpx

from coachgate.config.settings import settings
from coachgate.util.logger import logger


_upstream_async_client: httpx.AsyncClient | None = None
_upstream_client_lock: Any = None


def _upstream_http_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=max(10, int(settings.upstream_max_connections)),
        max_keepalive_connections=max(5, int(settings.upstream_max_keepalive_connections)),
    )


def _upstream_http_timeout() -> httpx.Timeout:
    # the dispatcher enforces the real wall-clock deadline; this only bounds each phase
    timeout = float(settings.upstream_timeout_ms) / 1000.0
    return httpx.Timeout(connect=timeout, read=timeout, write=timeout, pool=timeout)


async def _get_upstream_async_client() -> httpx.AsyncClient:
    global _upstream_async_client, _upstream_client_lock
    if _upstream_async_client is not None:
        return _upstream_async_client
    if _upstream_client_lock is None:
        _upstream_client_lock = asyncio.Lock()
    async with _upstream_client_lock:
        if _upstream_async_client is None:
            _upstream_async_client = httpx.AsyncClient(
                http2=False,
                timeout=_upstream_http_timeout(),
                limits=_upstream_http_limits(),
            )
    return _upstream_async_client


async def close_upstream_async_client() -> None:
    global _upstream_async_client
    if _upstream_async_client is not None:
        await _upstream_async_client.aclose()
        _upstream_async_client = None


def _decode_json_or_text(text: str) -> dict[str, Any] | str:
    if not text:
        return ""
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
        return text
    except json.JSONDecodeError:
        return text


def _build_forward_headers(api_key: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }


async def _forward_json(
    url: str,
    payload: dict[str, Any],
    headers: Mapping[str, str],
    client: httpx.AsyncClient | None = None,
) -> tuple[int, str]:
    """POST ``payload`` and return the status code with the undecoded body text.

    Raises ``TimeoutError`` when httpx gives up on a phase and ``RuntimeError``
    for any other transport failure.
    """
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    logger.debug("forward_json start url=%s payload_bytes=%d", url, len(body))
    http_client = client or await _get_upstream_async_client()
    try:
        response = await http_client.post(url=url, content=body, headers=dict(headers))
    except httpx.TimeoutException as exc:
        logger.warning("forward_json timeout url=%s error=%s", url, exc)
        raise TimeoutError(str(exc) or "upstream_timeout") from exc
    except httpx.HTTPError as exc:
        detail = (str(exc) or "").strip() or "connection_failed"
        logger.warning("forward_json http_error url=%s error=%s", url, detail)
        raise RuntimeError(f"upstream_unreachable: {detail}") from exc
    logger.debug("forward_json done url=%s status=%s", url, response.status_code)
    return response.status_code, response.content.decode("utf-8", errors="replace")
