"""Mobile chat route: guardrails, one upstream call, one reply."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from coachgate.config.settings import settings
from coachgate.core.context import RequestContext, RequestState
from coachgate.core.dispatcher import UpstreamDispatcher
from coachgate.core.errors import (
    CoachGateError,
    ConfigurationError,
    MalformedInputError,
    UpstreamTimeout,
)
from coachgate.core.validator import GuardrailValidator
from coachgate.observability.logging import log_event
from coachgate.policies.policy_engine import PolicyEngine
from coachgate.util.logger import logger


router = APIRouter()
policy_engine = PolicyEngine(rules_path=settings.tier_rules_path)
_DEBUG_REQUEST_BODY_MAX_CHARS = 32000
_DEBUG_HEADERS_REDACT = frozenset({"authorization", "cookie"})


def cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": f"Content-Type, {settings.debug_token_header}",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
    }


def _json(content: dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=cors_headers())


def preflight_response() -> JSONResponse:
    return _json({"ok": True}, 200)


def _log_request_if_debug(request: Request, payload: Any, route: str) -> None:
    """At debug level log method/path/headers; the body only when log_full_request_body is set."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    token_header = settings.debug_token_header.lower()
    headers_safe = {}
    for k, v in request.headers.items():
        key_lower = k.lower()
        if (
            key_lower in _DEBUG_HEADERS_REDACT
            or key_lower == token_header
            or "key" in key_lower
            or "secret" in key_lower
            or "token" in key_lower
        ):
            headers_safe[k] = "***"
        else:
            headers_safe[k] = v
    try:
        body_str = json.dumps(payload, ensure_ascii=False, indent=2)
    except (TypeError, ValueError):
        body_str = str(payload)
    logger.debug(
        "incoming request method=%s path=%s route=%s headers=%s body_size=%d",
        request.method,
        request.url.path,
        route,
        headers_safe,
        len(body_str),
    )
    if settings.log_full_request_body:
        logger.debug("incoming request body:\n%s", body_str[:_DEBUG_REQUEST_BODY_MAX_CHARS])


def _build_validator() -> GuardrailValidator:
    return GuardrailValidator(
        debug_token=settings.debug_token,
        token_header=settings.debug_token_header,
        policy_engine=policy_engine,
    )


def _build_dispatcher() -> UpstreamDispatcher:
    return UpstreamDispatcher(
        api_key=settings.openai_api_key,
        upstream_url=settings.upstream_url,
        model=settings.upstream_model,
        system_prompt=settings.system_prompt,
        timeout_ms=settings.upstream_timeout_ms,
    )


def _failure_state(exc: CoachGateError) -> RequestState:
    if isinstance(exc, ConfigurationError):
        return RequestState.CONFIG_MISSING
    if isinstance(exc, UpstreamTimeout):
        return RequestState.TIMED_OUT
    return RequestState.UPSTREAM_FAILED


def _error_response(exc: CoachGateError, ctx: RequestContext) -> JSONResponse:
    event = "chat_rejected" if ctx.state == RequestState.REJECTED else "chat_failed"
    log_event(
        event,
        request_id=ctx.request_id,
        state=ctx.state.value,
        kind=exc.kind,
        status=exc.status_code,
        tier=ctx.tier.value,
        messages=ctx.kept_messages,
        elapsed_ms=ctx.elapsed_ms(),
    )
    return _json(exc.to_body(), exc.status_code)


@router.post(settings.chat_path)
async def chat(request: Request) -> JSONResponse:
    ctx = RequestContext(
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        route=request.url.path,
    )
    ctx.advance(RequestState.VALIDATING)

    try:
        payload = await request.json()
    except ValueError as exc:
        error = MalformedInputError(str(exc))
        logger.info("chat body not json request_id=%s error=%s", ctx.request_id, error.parse_error)
        ctx.advance(RequestState.REJECTED)
        return _error_response(error, ctx)

    _log_request_if_debug(request, payload, ctx.route)

    try:
        validated = _build_validator().validate(payload, request.headers)
    except CoachGateError as exc:
        logger.info("chat rejected request_id=%s reason=%s", ctx.request_id, exc.message)
        ctx.advance(RequestState.REJECTED)
        return _error_response(exc, ctx)

    ctx.tier = validated.tier
    ctx.policy = validated.policy
    ctx.kept_messages = len(validated.messages)
    ctx.advance(RequestState.VALIDATED)

    ctx.advance(RequestState.DISPATCHING)
    try:
        reply = await _build_dispatcher().dispatch(validated)
    except CoachGateError as exc:
        ctx.advance(_failure_state(exc))
        if isinstance(exc, ConfigurationError):
            logger.error("chat dispatch misconfigured request_id=%s error=%s", ctx.request_id, exc.message)
        else:
            logger.warning(
                "chat dispatch failed request_id=%s kind=%s detail=%s",
                ctx.request_id,
                exc.kind,
                (exc.detail or "")[:600],
            )
        return _error_response(exc, ctx)

    ctx.advance(RequestState.SUCCEEDED)
    log_event(
        "chat_reply",
        request_id=ctx.request_id,
        tier=ctx.tier.value,
        messages=ctx.kept_messages,
        reply_chars=len(reply),
        elapsed_ms=ctx.elapsed_ms(),
    )
    return _json({"reply": reply}, 200)


def method_not_allowed_response(method: str, path: str) -> JSONResponse:
    logger.info("chat wrong method method=%s path=%s", method, path)
    return _json({"error": "Use POST"}, 405)
