import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from coachgate.config.settings import Settings, settings
from coachgate.core.models import TrustTier
from coachgate.policies.policy_engine import PolicyEngine
from coachgate.util.logger import configure_logger, resolve_level


@pytest.fixture
def restore_logger():
    try:
        yield
    finally:
        configure_logger()


def test_default_tier_rules_path_points_at_shipped_file(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    rules = Path(Settings().tier_rules_path)

    assert rules.is_absolute()
    assert rules.exists()
    assert rules.parent.name == "rules"
    engine = PolicyEngine(rules_path=settings.tier_rules_path)
    assert engine.resolve(TrustTier.STANDARD).max_messages == 10


def test_settings_drop_unused_fields():
    assert "env" not in Settings.model_fields
    assert Settings().log_file == ""


def test_logger_uses_stderr_only_by_default(monkeypatch, tmp_path: Path, restore_logger):
    monkeypatch.chdir(tmp_path)
    configured = configure_logger(level="info", log_file="")

    assert [type(h) for h in configured.handlers] == [logging.StreamHandler]
    assert not (tmp_path / "logs").exists()


def test_logger_adds_rotating_file_when_configured(tmp_path: Path, restore_logger):
    log_path = tmp_path / "nested" / "coachgate.log"
    configured = configure_logger(level="debug", log_file=str(log_path), max_bytes=1024, backup_count=2)

    file_handlers = [h for h in configured.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 1024
    assert file_handlers[0].backupCount == 2
    assert configured.level == logging.DEBUG

    configured.info("written to file")
    file_handlers[0].flush()
    assert "written to file" in log_path.read_text(encoding="utf-8")


def test_logger_unusable_file_path_raises(tmp_path: Path, restore_logger):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(OSError):
        configure_logger(log_file=str(blocker / "coachgate.log"))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("debug", logging.DEBUG), ("WARNING", logging.WARNING), (" error ", logging.ERROR), ("bogus", logging.INFO), (None, logging.INFO)],
)
def test_resolve_level(raw, expected):
    assert resolve_level(raw) == expected
