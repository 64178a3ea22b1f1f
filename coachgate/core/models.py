"""Internal transport models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TrustTier(str, Enum):
    STANDARD = "standard"
    ELEVATED = "elevated"


class GuardrailPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_messages: int = Field(gt=0)
    max_user_chars: int = Field(gt=0)
    max_output_tokens: int = Field(gt=0)


class InternalMessage(BaseModel):
    role: str
    content: str


class ValidatedRequest(BaseModel):
    tier: TrustTier
    policy: GuardrailPolicy
    messages: list[InternalMessage] = Field(default_factory=list)
