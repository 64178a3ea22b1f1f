"""Project error hierarchy.

Every error knows the HTTP status it maps to and how to render itself as the
JSON body the mobile client expects: ``{"error": ...}`` plus an optional
``"detail"`` for upstream diagnostics.
"""

from __future__ import annotations


class CoachGateError(Exception):
    """Base error."""

    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_body(self) -> dict:
        body: dict = {"error": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class MalformedInputError(CoachGateError):
    """Request body could not be parsed."""

    status_code = 400
    kind = "malformed_input"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__("Invalid JSON")
        # parser internals stay in the logs, the client gets the generic message
        self.parse_error = detail


class GuardrailViolation(CoachGateError):
    """Raised when the transcript breaks one of the active policy limits."""

    status_code = 400
    kind = "guardrail_violation"


class ConfigurationError(CoachGateError):
    status_code = 500
    kind = "configuration_error"


class PolicyResolutionError(CoachGateError):
    """Raised when tier policy rules cannot be loaded."""

    status_code = 500
    kind = "policy_error"

    def to_body(self) -> dict:
        return {"error": "Policy error"}


class UpstreamTimeout(CoachGateError):
    status_code = 502
    kind = "upstream_timeout"

    def __init__(self, timeout_ms: int) -> None:
        super().__init__("Proxy error", detail=f"upstream did not respond within {timeout_ms} ms")
        self.timeout_ms = timeout_ms


class UpstreamUnreachable(CoachGateError):
    status_code = 502
    kind = "upstream_unreachable"

    def __init__(self, detail: str) -> None:
        super().__init__("Proxy error", detail=detail)


class UpstreamError(CoachGateError):
    """Upstream answered with a non-success status; ``detail`` is its raw body."""

    status_code = 502
    kind = "upstream_error"

    def __init__(self, upstream_status: int, detail: str) -> None:
        super().__init__("OpenAI error", detail=detail)
        self.upstream_status = upstream_status
