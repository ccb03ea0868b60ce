"""
Runtime settings, read from the environment (and .env when present).
"""
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="'text' or 'json'")

    # LLM collaborator
    openai_model: str = Field(default="gpt-4.1-mini")
    openai_api_key: Optional[str] = None
    llm_timeout_s: float = Field(default=20.0, gt=0)

    # orchestration
    auto_verify_replies: bool = False
    verify_poll_attempts: int = Field(default=3, ge=0)
    verify_poll_delay_s: float = Field(default=0.25, ge=0)
    max_message_chars: int = Field(default=2000, ge=1)

    # classification cascade
    local_tier_timeout_s: float = Field(default=3.0, gt=0)
    llm_tier_timeout_s: float = Field(default=8.0, gt=0)
    local_tier_min_confidence: float = Field(default=0.7, ge=0, le=1)
    llm_tier_min_confidence: float = Field(default=0.6, ge=0, le=1)
    classify_cache_size: int = Field(default=256, ge=0)
    classify_cache_ttl_s: float = Field(default=300.0, gt=0)

    # sessions
    session_store: str = Field(default="memory", description="'memory' or 'sql'")
    database_url: str = Field(default="sqlite:///wayfarer.db")
    session_ttl_s: int = Field(default=3600, ge=1)
    max_messages: int = Field(default=16, ge=1)

    # consent wording
    consent_web_search_message: str = (
        "I can search the web to find current flight and airline information. "
        "Would you like me to do that?"
    )
    consent_decline_message: str = (
        "No problem! Is there something else about your trip I can help with?"
    )
    consent_deep_research_message: str = (
        "This looks like a complex travel planning question that could benefit from deep research "
        "across multiple sources. This may take a bit longer. Proceed with deep research?"
    )
    consent_no_data_message: str = (
        "Would you like me to search the web for current information instead?"
    )

    # deep research
    deep_research_enabled: bool = False
    deep_research_min_confidence: float = Field(default=0.7, ge=0, le=1)
    deep_research_max_queries: int = Field(default=4, ge=1)
    offer_web_search_on_no_data: bool = True

    # providers
    amadeus_client_id: Optional[str] = None
    amadeus_client_secret: Optional[str] = None
    amadeus_hostname: str = "test"
    opentripmap_api_key: Optional[str] = None
    brave_search_api_key: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()


def env_override(target: str, field: str) -> Optional[str]:
    """
    Per-target resilience override, e.g. RESILIENCE_WEATHER_FAILURE_THRESHOLD.
    """
    key = f"RESILIENCE_{target.replace('-', '_').replace('.', '_').upper()}_{field.upper()}"
    return os.getenv(key)
