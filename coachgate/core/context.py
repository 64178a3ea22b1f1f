"""Per-request runtime context and lifecycle state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from time import monotonic

from coachgate.core.models import GuardrailPolicy, TrustTier


class RequestState(str, Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    REJECTED = "rejected"
    VALIDATED = "validated"
    DISPATCHING = "dispatching"
    TIMED_OUT = "timed_out"
    UPSTREAM_FAILED = "upstream_failed"
    CONFIG_MISSING = "config_missing"
    SUCCEEDED = "succeeded"


_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.RECEIVED: frozenset({RequestState.VALIDATING}),
    RequestState.VALIDATING: frozenset({RequestState.REJECTED, RequestState.VALIDATED}),
    RequestState.VALIDATED: frozenset({RequestState.DISPATCHING}),
    RequestState.DISPATCHING: frozenset(
        {
            RequestState.TIMED_OUT,
            RequestState.UPSTREAM_FAILED,
            RequestState.CONFIG_MISSING,
            RequestState.SUCCEEDED,
        }
    ),
}

TERMINAL_STATES = frozenset(
    {
        RequestState.REJECTED,
        RequestState.TIMED_OUT,
        RequestState.UPSTREAM_FAILED,
        RequestState.CONFIG_MISSING,
        RequestState.SUCCEEDED,
    }
)


@dataclass(slots=True)
class RequestContext:
    request_id: str
    route: str
    tier: TrustTier = TrustTier.STANDARD
    policy: GuardrailPolicy | None = None
    state: RequestState = RequestState.RECEIVED
    started_at: float = field(default_factory=monotonic)
    history: list[RequestState] = field(default_factory=lambda: [RequestState.RECEIVED])
    kept_messages: int = 0

    def advance(self, target: RequestState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if target not in allowed:
            raise ValueError(f"illegal request state transition: {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def elapsed_ms(self) -> int:
        return int((monotonic() - self.started_at) * 1000)
