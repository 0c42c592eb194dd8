"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [item.strip().lower() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./helpdesk.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Machine credentials
    INTERNAL_API_KEY: str = ""  # Bearer token for POST /ingest
    INTERNAL_SECRET: str = ""  # Secret for /internal/scheduled/* endpoints

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Completion service
    AI_PROVIDER: str = "openai"
    AI_API_KEY: str = ""
    AI_MODEL: str = "gpt-4o-mini"
    AI_MAX_TOKENS: int = 500
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_CONFIDENCE_THRESHOLD: float = 0.85
    AI_HISTORY_WINDOW: int = 10

    # Channel policy (comma-separated channel names)
    AI_AUTO_RESPONSE_CHANNELS: str = "dashboard,portal,widget,email,api,sms,slack"
    HUMAN_FIRST_CHANNELS: str = ""
    CONTINUATION_CHANNELS: str = "sms,widget"

    # Knowledge search
    KB_SIMILARITY_THRESHOLD: float = 0.3
    KB_MAX_RESULTS: int = 5

    # Web search fallback (Brave)
    BRAVE_SEARCH_API_KEY: str = ""
    WEB_SEARCH_TIMEOUT_SECONDS: float = 8.0
    WEB_SEARCH_CACHE_SIZE: int = 100
    WEB_SEARCH_CACHE_TTL_SECONDS: int = 300
    WEB_SEARCH_BUCKET_CAPACITY: int = 5
    WEB_SEARCH_REFILL_PER_SECOND: float = 1.0

    # Channel senders (blank = dry run)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM_NUMBER: str = ""
    SLACK_BOT_TOKEN: str = ""
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "support@example.com"

    # Workflow events: False enqueues a job per event, True runs in-request
    WORKFLOW_EVENTS_INLINE: bool = False

    # Ticket lifecycle
    AUTO_CLOSE_DAYS: int = 7

    # Rate Limiting (requests per minute)
    RATE_LIMIT_WEBHOOK: int = 100
    RATE_LIMIT_API: int = 60

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def ai_channels_list(self) -> list[str]:
        return _split_csv(self.AI_AUTO_RESPONSE_CHANNELS)

    @property
    def human_first_channels_list(self) -> list[str]:
        return _split_csv(self.HUMAN_FIRST_CHANNELS)

    @property
    def continuation_channels_list(self) -> list[str]:
        return _split_csv(self.CONTINUATION_CHANNELS)


settings = Settings()
