"""Settings and configuration management."""

import logging
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Newsletter identity
    newsletter_name: str = Field("St. Cloud Scoop", description="Newsletter name")
    app_url: str = Field(
        "http://localhost:8000",
        description="Public base URL used for tracking and poll links",
    )
    timezone: str = Field("America/Chicago", description="Newsletter timezone")

    # Storage
    database_path: str = Field("scoop.db", description="SQLite database file")
    redis_url: Optional[str] = Field(
        None, description="Redis URL for the catalog cache (in-memory if unset)"
    )
    broker_url: str = Field(
        "redis://localhost:6379/0", description="Celery broker URL"
    )

    # AI Processing
    openrouter_api_key: Optional[str] = Field(None, description="OpenRouter")
    ai_base_url: str = Field(
        "https://openrouter.ai/api/v1", description="Chat completions base URL"
    )
    ai_model: str = Field("openai/gpt-4o-mini", description="Primary AI model")
    ai_fallback_models: str = Field(
        "google/gemini-flash-1.5-8b",
        description="Comma-separated fallback models tried in order",
    )

    # Email delivery
    mailerlite_api_key: Optional[str] = Field(None, description="MailerLite")
    mailerlite_review_group_id: Optional[str] = Field(
        None, description="Subscriber group receiving review sends"
    )
    mailerlite_main_group_id: Optional[str] = Field(
        None, description="Subscriber group receiving final sends"
    )
    mailerlite_timezone_id: Optional[int] = Field(
        None,
        ge=1,
        description="MailerLite timezone id for scheduled sends (derived from timezone when unset)",
    )
    email_from_name: str = Field("St. Cloud Scoop", description="Sender name")
    email_from_address: str = Field(
        "scoop@stcscoop.com", description="Sender address"
    )
    subject_prefix: str = Field("🍦 ", description="Prefix added to subjects")
    review_send_time: str = Field(
        "21:00", pattern=r"^\d{2}:\d{2}$", description="Review send time (HH:MM)"
    )
    final_send_time: str = Field(
        "04:55", pattern=r"^\d{2}:\d{2}$", description="Final send time (HH:MM)"
    )
    rss_processing_time: str = Field(
        "20:30", pattern=r"^\d{2}:\d{2}$", description="Pipeline run time (HH:MM)"
    )

    # Authentication
    cron_secret: Optional[str] = Field(None, description="Shared cron secret")
    dashboard_token: Optional[str] = Field(
        None, description="Token accepted for dashboard routes"
    )

    # Weather
    weather_latitude: float = Field(45.5608, ge=-90.0, le=90.0)
    weather_longitude: float = Field(-94.1622, ge=-180.0, le=180.0)

    # Application Settings
    debug: bool = Field(False, description="Debug mode")
    log_level: str = Field("INFO", description="Log level")

    # API Timeout Settings (in seconds)
    openrouter_timeout: float = Field(
        30.0, ge=5.0, le=120.0, description="AI request timeout in seconds"
    )
    rss_feed_timeout: float = Field(
        30.0, ge=5.0, le=120.0, description="RSS feed fetch timeout in seconds"
    )
    mailerlite_timeout: float = Field(
        15.0, ge=5.0, le=60.0, description="MailerLite request timeout in seconds"
    )
    weather_timeout: float = Field(
        10.0, ge=3.0, le=30.0, description="Weather API request timeout in seconds"
    )

    # AI Rate Limiting Settings
    openrouter_min_request_interval: float = Field(
        0.5,
        ge=0.0,
        le=10.0,
        description="Minimum seconds between AI requests",
    )
    openrouter_max_backoff_multiplier: float = Field(
        8.0,
        ge=2.0,
        le=32.0,
        description="Maximum backoff multiplier after rate limit responses",
    )

    # General API Settings
    default_user_agent: str = Field(
        "Scoop-Newsletter/1.0",
        min_length=5,
        max_length=100,
        description="Default User-Agent for HTTP requests",
    )

    # Pipeline Settings
    post_lookback_hours: int = Field(
        24, ge=1, le=168, description="Only ingest posts newer than this"
    )
    evaluation_batch_size: int = Field(
        3, ge=1, le=10, description="Posts scored concurrently per batch"
    )
    evaluation_batch_delay: float = Field(
        2.0, ge=0.0, le=30.0, description="Seconds to wait between scoring batches"
    )
    writer_candidates: int = Field(
        12, ge=1, le=50, description="Top rated posts rewritten into articles"
    )
    max_active_articles: int = Field(
        5, ge=1, le=20, description="Articles marked active after ranking"
    )
    subject_max_length: int = Field(
        35, ge=10, le=150, description="Hard character limit for subject lines"
    )
    regional_bonus: int = Field(
        2, ge=0, le=10, description="Bonus added for multi-community stories"
    )
    local_communities: str = Field(
        "St. Cloud,Waite Park,Sartell,Sauk Rapids,St. Joseph,St. Augusta,Cold Spring",
        description="Comma-separated community names used for the regional bonus",
    )
    dedup_history_days: int = Field(
        3, ge=0, le=30, description="Exclude posts used in campaigns sent this recently"
    )
    fact_check_enabled: bool = Field(
        True, description="Run the AI fact check on rewritten articles"
    )
    events_per_day: int = Field(
        8, ge=1, le=30, description="Maximum events selected per day"
    )
    catalog_cache_ttl: int = Field(
        3600, ge=0, le=86400, description="Seconds catalog fetches stay cached"
    )

    @model_validator(mode="after")
    def check_schedule_order(self) -> "Settings":
        """Warn when the pipeline is scheduled after the review send."""
        if self.rss_processing_time >= self.review_send_time:
            logger.warning(
                f"RSS processing ({self.rss_processing_time}) is scheduled at or after "
                f"the review send ({self.review_send_time})"
            )
        return self

    @property
    def fallback_models(self) -> List[str]:
        return [m.strip() for m in self.ai_fallback_models.split(",") if m.strip()]

    @property
    def community_names(self) -> List[str]:
        return [c.strip() for c in self.local_communities.split(",") if c.strip()]
