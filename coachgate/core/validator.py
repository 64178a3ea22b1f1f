"""Guardrail validation for incoming chat transcripts."""

from __future__ import annotations

import hmac
from typing import Any, Mapping

from coachgate.core.errors import GuardrailViolation
from coachgate.core.models import GuardrailPolicy, InternalMessage, TrustTier, ValidatedRequest
from coachgate.policies.policy_engine import PolicyEngine
from coachgate.util.logger import logger


ALLOWED_ROLES = frozenset({"user", "assistant"})


def _header_value(headers: Mapping[str, str], target: str) -> str:
    for key, value in headers.items():
        if key.lower() == target.lower():
            return value
    return ""


def _message_role(item: Any) -> str:
    if isinstance(item, InternalMessage):
        return item.role
    if isinstance(item, dict):
        role = item.get("role")
        return role if isinstance(role, str) else ""
    return ""


def _message_text(item: Any) -> Any:
    if isinstance(item, InternalMessage):
        return item.content
    if not isinstance(item, dict):
        return None
    # already-normalized transcripts carry "content" instead of "text"
    if "text" in item:
        return item.get("text")
    return item.get("content")


def normalize_messages(raw_messages: Any) -> list[InternalMessage]:
    """Keep well-formed user/assistant turns, trimmed, in their original order."""

    if not isinstance(raw_messages, list):
        return []
    normalized: list[InternalMessage] = []
    for item in raw_messages:
        role = _message_role(item)
        if role not in ALLOWED_ROLES:
            continue
        text = _message_text(item)
        if not isinstance(text, str):
            continue
        trimmed = text.strip()
        if not trimmed:
            continue
        normalized.append(InternalMessage(role=role, content=trimmed))
    return normalized


def _last_user_message(messages: list[Any]) -> Any:
    for item in reversed(messages):
        if _message_role(item) == "user":
            return item
    return None


class GuardrailValidator:
    """Bounds a transcript by the policy of the caller's trust tier.

    The trust tier comes from comparing ``token_header`` against
    ``debug_token``; an empty secret means every caller is standard tier.
    """

    def __init__(
        self,
        *,
        debug_token: str,
        policy_engine: PolicyEngine,
        token_header: str = "x-debug-token",
    ) -> None:
        self.debug_token = debug_token or ""
        self.token_header = token_header
        self.policy_engine = policy_engine

    def resolve_tier(self, headers: Mapping[str, str]) -> TrustTier:
        presented = _header_value(headers, self.token_header)
        if not self.debug_token or not presented:
            return TrustTier.STANDARD
        if hmac.compare_digest(presented.encode("utf-8"), self.debug_token.encode("utf-8")):
            return TrustTier.ELEVATED
        logger.warning("trust token mismatch, falling back to standard tier")
        return TrustTier.STANDARD

    def resolve_policy(self, headers: Mapping[str, str]) -> tuple[TrustTier, GuardrailPolicy]:
        tier = self.resolve_tier(headers)
        return tier, self.policy_engine.resolve(tier)

    def validate(self, payload: Any, headers: Mapping[str, str]) -> ValidatedRequest:
        raw_messages = payload.get("messages") if isinstance(payload, dict) else None
        messages = raw_messages if isinstance(raw_messages, list) else []
        if not messages:
            raise GuardrailViolation("no messages")

        last_user = _last_user_message(messages)
        if last_user is None:
            raise GuardrailViolation("no user message")
        last_user_text = _message_text(last_user)
        if not isinstance(last_user_text, str) or not last_user_text.strip():
            raise GuardrailViolation("empty user message")

        tier, policy = self.resolve_policy(headers)

        # only the most recent user turn is length-checked
        if len(last_user_text.strip()) > policy.max_user_chars:
            raise GuardrailViolation(f"message too long (max {policy.max_user_chars} chars)")
        if len(messages) > policy.max_messages:
            raise GuardrailViolation(f"too many messages (max {policy.max_messages})")

        normalized = normalize_messages(messages)
        if not normalized:
            raise GuardrailViolation("no valid messages after normalization")

        logger.debug(
            "transcript validated tier=%s raw_messages=%d kept_messages=%d",
            tier.value,
            len(messages),
            len(normalized),
        )
        return ValidatedRequest(tier=tier, policy=policy, messages=normalized)
