from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Pro-gated features. FREE_MODE grants all of them regardless of subscription.
FEATURE_FLAGS: Dict[str, bool] = {
    "dopamine_lab": True,
    "self_regulation_test": True,
    "ai_coaching": True,
    "streak_analytics": True,
    "personalization": True,
}


class Settings(BaseSettings):
    """
    Central configuration for the StreakProof onboarding backend.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,   # env var names are case-sensitive
        extra="ignore",
        populate_by_name=True,
    )

    # these will read from ENV and DEBUG in env/system
    env: str = Field(default="local", alias="ENV")
    debug: bool = Field(default=False, alias="DEBUG")

    # absence is expected: generation is skipped and fallbacks are served
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key",
        alias="OPENAI_API_KEY",
    )

    openai_timeout_ms: int = Field(default=12000, gt=0, alias="OPENAI_TIMEOUT_MS")
    simulate_ai_delay_ms: int = Field(default=0, ge=0, alias="SIMULATE_AI_DELAY_MS")

    openai_model_profile: str = Field(default="gpt-4.1-mini", alias="OPENAI_MODEL_PROFILE")
    openai_model_recs: str = Field(default="gpt-4.1-mini", alias="OPENAI_MODEL_RECS")

    free_mode_flag: bool = Field(default=False, alias="FREE_MODE")

    @property
    def openai_configured(self) -> bool:
        return bool(self.openai_api_key and self.openai_api_key.strip())

    @property
    def free_mode(self) -> bool:
        """Billing checks are bypassed when FREE_MODE is set or in development."""
        return self.free_mode_flag or self.env == "development"

    @property
    def openai_timeout_s(self) -> float:
        return self.openai_timeout_ms / 1000.0


def resolve_features(settings: Settings, has_subscription: bool = False) -> Dict[str, bool]:
    """
    Which pro features the caller can use.

    A feature must be switched on in FEATURE_FLAGS, and then either
    free mode is active or the caller has a subscription.
    """
    granted = settings.free_mode or has_subscription
    return {name: enabled and granted for name, enabled in FEATURE_FLAGS.items()}


@lru_cache
def get_settings() -> Settings:
    return Settings()
