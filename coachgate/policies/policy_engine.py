"""Trust-tier guardrail policy resolution."""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any

import yaml
from pydantic import ValidationError

from coachgate.core.errors import PolicyResolutionError
from coachgate.core.models import GuardrailPolicy, TrustTier
from coachgate.util.logger import logger


DEFAULT_RULES_PATH = Path(__file__).resolve().parent / "rules" / "tiers.yaml"

# used whenever the rules file is absent (e.g. an empty config mount); mirrors tiers.yaml
_BUILTIN_TIER_POLICIES: dict[TrustTier, dict[str, int]] = {
    TrustTier.STANDARD: {"max_messages": 10, "max_user_chars": 500, "max_output_tokens": 220},
    TrustTier.ELEVATED: {"max_messages": 200, "max_user_chars": 5000, "max_output_tokens": 700},
}


class PolicyEngine:
    def __init__(self, rules_path: str | Path = DEFAULT_RULES_PATH) -> None:
        self.rules_path = Path(rules_path)
        self._cache_lock = Lock()
        self._cache: tuple[int, dict[str, Any]] | None = None

    def _load_rules(self) -> dict[str, Any]:
        if not self.rules_path.exists():
            logger.debug("tier rules not found, using built-in policies path=%s", self.rules_path)
            return {}

        mtime_ns = self.rules_path.stat().st_mtime_ns
        with self._cache_lock:
            if self._cache and self._cache[0] == mtime_ns:
                return self._cache[1]

            try:
                loaded = yaml.safe_load(self.rules_path.read_text(encoding="utf-8")) or {}
            except yaml.YAMLError as exc:
                raise PolicyResolutionError(f"invalid tier rules yaml: {self.rules_path}") from exc
            if not isinstance(loaded, dict):
                raise PolicyResolutionError(f"invalid tier rules format: {self.rules_path}")
            tiers = loaded.get("tiers", {}) or {}
            if not isinstance(tiers, dict):
                raise PolicyResolutionError(f"invalid tier rules format: {self.rules_path}")
            self._cache = (mtime_ns, tiers)
            return tiers

    def resolve(self, tier: TrustTier) -> GuardrailPolicy:
        rules = self._load_rules()
        merged = dict(_BUILTIN_TIER_POLICIES[tier])
        overrides = rules.get(tier.value) or {}
        if not isinstance(overrides, dict):
            raise PolicyResolutionError(f"invalid rules for tier: {tier.value}")
        merged.update({key: value for key, value in overrides.items() if key in merged})
        try:
            policy = GuardrailPolicy(**merged)
        except ValidationError as exc:
            raise PolicyResolutionError(f"invalid limits for tier {tier.value}: {exc.errors()}") from exc

        logger.debug(
            "policy resolved tier=%s max_messages=%s max_user_chars=%s max_output_tokens=%s",
            tier.value,
            policy.max_messages,
            policy.max_user_chars,
            policy.max_output_tokens,
        )
        return policy
