"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Auth ─────────────────────────────────────────────────────────
    require_voice_auth: bool = Field(default=True, alias="FF_REQUIRE_VOICE_AUTH")
    # ON  → Voice endpoint requires "Bearer <VOICE_LLM_SECRET>".
    # OFF → Any caller accepted. Only for debugging the voice platform link.

    # ── Cache / Realtime ─────────────────────────────────────────────
    use_redis: bool = Field(default=True, alias="FF_USE_REDIS")
    # ON  → Completion notifications published on Redis. Needs REDIS_URL.
    # OFF → Notifications silently skipped. Nothing breaks.

    # ── LLM Provider ─────────────────────────────────────────────────
    llm_provider: str = Field(default="gemini", alias="FF_LLM_PROVIDER")
    # "gemini" → Google Gemini OpenAI-compatible endpoint. Needs GEMINI_API_KEY.
    # "aiml"   → AIML API proxy. Needs AIML_API_KEY.
    # "openai" → Direct OpenAI. Needs OPENAI_API_KEY.

    # ── Billing ──────────────────────────────────────────────────────
    enforce_usage_limits: bool = Field(default=True, alias="FF_ENFORCE_USAGE_LIMITS")
    # OFF → Coaching sessions never blocked on tenant token limits.

    # ── Verticals ────────────────────────────────────────────────────
    enable_assessment: bool = Field(default=True, alias="FF_ENABLE_ASSESSMENT")
    enable_coaching: bool = Field(default=True, alias="FF_ENABLE_COACHING")
    # Education is always on. A disabled vertical is not registered; its traffic routes to education.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
