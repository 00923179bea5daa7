"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings

DAY_SECONDS = 86400


class Settings(BaseSettings):
    """All configuration is loaded from environment variables prefixed with SPL_."""

    # Database
    database_url: str = ""

    # Deduplication
    similarity_threshold: float = 0.7
    auto_merge_threshold: float = 0.9
    enable_phonetic_matching: bool = True
    enable_address_matching: bool = True
    batch_size: int = 100
    dedupe_settings_path: str = ""

    # Prioritization (empty means use the default weights)
    priority_weights: dict[str, float] = {}

    # Cache expiry
    priority_score_ttl: int = 7 * DAY_SECONDS
    quality_score_ttl: int = 7 * DAY_SECONDS
    duplicate_candidate_ttl: int = 7 * DAY_SECONDS
    merge_history_ttl: int = 90 * DAY_SECONDS
    forwarding_pointer_ttl: int = 365 * DAY_SECONDS

    # Advisory recommendation refiner (OpenAI-compatible chat endpoint)
    recommendation_api_url: str = ""
    recommendation_api_key: str = ""
    recommendation_model: str = "gpt-4o-mini"
    recommendation_timeout: float = 10.0

    model_config = {"env_file": ".env", "env_prefix": "SPL_"}


def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
