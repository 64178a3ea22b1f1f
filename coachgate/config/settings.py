"""Runtime settings."""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_TIER_RULES = Path(__file__).resolve().parents[1] / "policies" / "rules" / "tiers.yaml"

_DEFAULT_SYSTEM_PROMPT = """
You are Coach - calm, concise, and opinionated.
- Keep replies short (3-8 sentences).
- Prefer a simple 1-2-3 structure.
- Reduce performance anxiety.
- End with one clear question.
""".strip()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="COACH_", extra="ignore")

    app_name: str = "CoachGate"
    log_level: str = "info"
    # empty keeps logs on stderr only
    log_file: str = ""
    log_file_max_bytes: int = 10 * 1024 * 1024
    log_file_backup_count: int = 10
    # DEBUG only: False logs method/path/headers + body_size, never the body itself
    log_full_request_body: bool = False
    chat_path: str = "/api/chat"

    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("OPENAI_API_KEY", "COACH_OPENAI_API_KEY"),
    )
    # empty disables the elevated tier entirely
    debug_token: str = ""
    debug_token_header: str = "x-debug-token"

    upstream_url: str = "https://api.openai.com/v1/responses"
    upstream_model: str = "gpt-4o-mini"
    upstream_timeout_ms: int = Field(default=12000, gt=0)
    upstream_max_connections: int = 100
    upstream_max_keepalive_connections: int = 20
    system_prompt: str = _DEFAULT_SYSTEM_PROMPT

    tier_rules_path: str = str(_DEFAULT_TIER_RULES)


settings = Settings()
