"""Deadline-bounded dispatch of a validated transcript to the completion API."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from coachgate.adapters.openai_responses.upstream import (
    _build_forward_headers,
    _decode_json_or_text,
    _forward_json,
)
from coachgate.core.errors import ConfigurationError, UpstreamError, UpstreamTimeout, UpstreamUnreachable
from coachgate.core.models import GuardrailPolicy, InternalMessage, ValidatedRequest
from coachgate.util.logger import logger


FALLBACK_REPLY = "Sorry, I couldn't reply."
DEFAULT_TIMEOUT_MS = 12000


def _first(value: Any) -> Any:
    if isinstance(value, list) and value:
        return value[0]
    return None


def _non_empty_str(value: Any) -> str:
    if isinstance(value, str) and value != "":
        return value
    return ""


def extract_reply(body: Any) -> str:
    """Pick the reply text out of an upstream body, falling back to a canned reply."""

    if not isinstance(body, dict):
        return FALLBACK_REPLY
    first_output = _first(body.get("output"))
    if isinstance(first_output, dict):
        first_part = _first(first_output.get("content"))
        if isinstance(first_part, dict):
            text = _non_empty_str(first_part.get("text"))
            if text:
                return text
    text = _non_empty_str(body.get("output_text"))
    if text:
        return text
    return FALLBACK_REPLY


class UpstreamDispatcher:
    def __init__(
        self,
        *,
        api_key: str,
        upstream_url: str,
        model: str,
        system_prompt: str,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        credential_name: str = "OPENAI_API_KEY",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or ""
        self.upstream_url = upstream_url
        self.model = model
        self.system_prompt = system_prompt
        self.timeout_ms = int(timeout_ms)
        self.credential_name = credential_name
        self.client = client

    def build_payload(self, messages: list[InternalMessage], policy: GuardrailPolicy) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_output_tokens": policy.max_output_tokens,
            "input": [
                {"role": "system", "content": self.system_prompt},
                *({"role": item.role, "content": item.content} for item in messages),
            ],
        }

    async def dispatch(self, request: ValidatedRequest) -> str:
        if not self.api_key:
            raise ConfigurationError(f"Missing {self.credential_name}")

        payload = self.build_payload(request.messages, request.policy)
        headers = _build_forward_headers(self.api_key)
        try:
            # wait_for cancels the in-flight call and drops its timer on every exit path
            status_code, raw_body = await asyncio.wait_for(
                _forward_json(self.upstream_url, payload, headers, client=self.client),
                timeout=self.timeout_ms / 1000.0,
            )
        except (asyncio.TimeoutError, TimeoutError) as exc:
            logger.warning("upstream deadline exceeded timeout_ms=%s", self.timeout_ms)
            raise UpstreamTimeout(self.timeout_ms) from exc
        except RuntimeError as exc:
            raise UpstreamUnreachable(str(exc)) from exc

        if status_code < 200 or status_code >= 300:
            logger.warning("upstream http error status=%s body_chars=%d", status_code, len(raw_body))
            raise UpstreamError(status_code, raw_body)

        return extract_reply(_decode_json_or_text(raw_body))
