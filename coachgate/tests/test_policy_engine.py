import os
from pathlib import Path

import pytest

from coachgate.core.errors import PolicyResolutionError
from coachgate.core.models import GuardrailPolicy, TrustTier
from coachgate.policies.policy_engine import PolicyEngine


def test_policy_engine_uses_builtin_tiers_without_rules_file(tmp_path: Path):
    engine = PolicyEngine(rules_path=str(tmp_path / "tiers.yaml"))

    assert engine.resolve(TrustTier.STANDARD) == GuardrailPolicy(
        max_messages=10, max_user_chars=500, max_output_tokens=220
    )
    assert engine.resolve(TrustTier.ELEVATED) == GuardrailPolicy(
        max_messages=200, max_user_chars=5000, max_output_tokens=700
    )


def test_policy_engine_merges_partial_overrides(tmp_path: Path):
    rules = tmp_path / "tiers.yaml"
    rules.write_text(
        "tiers:\n  standard:\n    max_messages: 4\n    unknown_key: 99\n",
        encoding="utf-8",
    )

    engine = PolicyEngine(rules_path=str(rules))
    standard = engine.resolve(TrustTier.STANDARD)

    assert standard.max_messages == 4
    assert standard.max_user_chars == 500
    assert engine.resolve(TrustTier.ELEVATED).max_messages == 200


def test_policy_engine_reloads_when_rules_change(tmp_path: Path):
    rules = tmp_path / "tiers.yaml"
    rules.write_text("tiers:\n  standard:\n    max_output_tokens: 100\n", encoding="utf-8")
    engine = PolicyEngine(rules_path=str(rules))
    assert engine.resolve(TrustTier.STANDARD).max_output_tokens == 100

    rules.write_text("tiers:\n  standard:\n    max_output_tokens: 150\n", encoding="utf-8")
    # force a distinct mtime even on coarse-grained filesystems
    stat = rules.stat()
    os.utime(rules, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
    assert engine.resolve(TrustTier.STANDARD).max_output_tokens == 150


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "tiers: [1, 2]\n",
        "tiers:\n  standard: 5\n",
        "tiers:\n  standard:\n    max_messages: 0\n",
        "tiers: {standard: [unclosed\n",
    ],
)
def test_policy_engine_rejects_malformed_rules(tmp_path: Path, content: str):
    rules = tmp_path / "tiers.yaml"
    rules.write_text(content, encoding="utf-8")

    engine = PolicyEngine(rules_path=str(rules))
    with pytest.raises(PolicyResolutionError):
        engine.resolve(TrustTier.STANDARD)


def test_shipped_rules_match_builtin_defaults():
    shipped = Path(__file__).resolve().parents[1] / "policies" / "rules" / "tiers.yaml"
    from_file = PolicyEngine(rules_path=str(shipped))
    builtin = PolicyEngine(rules_path=str(shipped.with_name("absent.yaml")))

    for tier in TrustTier:
        assert from_file.resolve(tier) == builtin.resolve(tier)
