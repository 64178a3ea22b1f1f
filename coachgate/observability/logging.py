"""Structured request outcome events."""

from __future__ import annotations

from coachgate.util.logger import get_logger


_event_logger = get_logger("events")


def format_event(event: str, payload: dict[str, object]) -> str:
    fields = " ".join(f"{key}={payload[key]}" for key in sorted(payload))
    return f"event={event} {fields}".rstrip()


def log_event(event: str, **payload: object) -> None:
    _event_logger.info(format_event(event, payload))
