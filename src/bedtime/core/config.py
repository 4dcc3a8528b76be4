"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database Configuration
    database_url: str = Field(alias="DATABASE_URL")
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # Entrypoint authentication
    admin_api_key: str = Field(default="", alias="ADMIN_API_KEY")
    webhook_secret: str = Field(default="", alias="WEBHOOK_SECRET")

    # Supabase Storage (artifact store)
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_service_role_key: str = Field(default="", alias="SUPABASE_SERVICE_ROLE_KEY")
    uploads_bucket: str = Field(default="uploads", alias="UPLOADS_BUCKET")
    images_bucket: str = Field(default="images", alias="IMAGES_BUCKET")
    signed_url_ttl_seconds: int = Field(default=3600, alias="SIGNED_URL_TTL_SECONDS")
    storage_timeout_seconds: float = Field(default=30.0, alias="STORAGE_TIMEOUT_SECONDS")

    # OpenRouter text generation
    openrouter_api_key: str = Field(default="", alias="OPENROUTER_API_KEY")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", alias="OPENROUTER_BASE_URL"
    )
    openrouter_text_model: str = Field(
        default="xiaomi/mimo-v2-flash:free", alias="OPENROUTER_TEXT_MODEL"
    )
    openrouter_http_referer: str = Field(default="", alias="OPENROUTER_HTTP_REFERER")
    openrouter_title: str = Field(default="Bedtime Solved", alias="OPENROUTER_TITLE")
    text_timeout_seconds: float = Field(default=60.0, alias="TEXT_TIMEOUT_SECONDS")
    text_temperature: float = Field(default=0.8, alias="TEXT_TEMPERATURE")
    text_max_tokens: int = Field(default=512, alias="TEXT_MAX_TOKENS")

    # Replicate image generation
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_image_model: str = Field(
        default="black-forest-labs/flux-kontext-pro", alias="REPLICATE_IMAGE_MODEL"
    )
    image_timeout_seconds: float = Field(default=120.0, alias="IMAGE_TIMEOUT_SECONDS")
    image_output_format: str = Field(default="png", alias="IMAGE_OUTPUT_FORMAT")

    # In-call retry policy shared by the generation clients
    generation_max_retries: int = Field(default=3, alias="GENERATION_MAX_RETRIES")
    generation_retry_delays: list[float] = Field(
        default=[1.0, 2.0, 4.0], alias="GENERATION_RETRY_DELAYS"
    )

    # Job pipeline
    job_max_attempts: int = Field(default=3, ge=1, alias="JOB_MAX_ATTEMPTS")
    fail_fast_on_permanent_errors: bool = Field(
        default=True, alias="FAIL_FAST_ON_PERMANENT_ERRORS"
    )
    worker_enabled: bool = Field(default=False, alias="WORKER_ENABLED")
    poll_interval_seconds: float = Field(default=2.0, alias="POLL_INTERVAL_SECONDS")
    max_steps_per_request: int = Field(default=5, ge=1, alias="MAX_STEPS_PER_REQUEST")
    # A processing job is only treated as orphaned once its claim is older than
    # the longest possible step: IMAGE_TIMEOUT_SECONDS x (GENERATION_MAX_RETRIES + 1)
    orphan_lease_seconds: float = Field(default=600.0, gt=0, alias="ORPHAN_LEASE_SECONDS")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def longest_step_seconds(self) -> float:
        """Upper bound on one image step: every in-call attempt hits the timeout."""
        return self.image_timeout_seconds * (self.generation_max_retries + 1)

    @model_validator(mode="after")
    def validate_orphan_lease(self) -> "Settings":
        """Reject a lease that could expire while a step is still running."""
        if self.orphan_lease_seconds <= self.longest_step_seconds:
            raise ValueError(
                f"ORPHAN_LEASE_SECONDS ({self.orphan_lease_seconds}) must exceed "
                f"IMAGE_TIMEOUT_SECONDS x (GENERATION_MAX_RETRIES + 1) "
                f"({self.longest_step_seconds})"
            )
        return self

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast with clear error messages if credentials for the artifact
        store or the generation services are missing.

        Validation is skipped in test environments.
        """
        if self.app_env in ("test", "testing"):
            return self

        missing = []

        if not self.supabase_url or not self.supabase_service_role_key:
            missing.append(
                "SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY: Project settings -> API in Supabase"
            )

        if not self.openrouter_api_key:
            missing.append("OPENROUTER_API_KEY: Create a key at https://openrouter.ai/keys")

        if not self.replicate_api_token:
            missing.append(
                "REPLICATE_API_TOKEN: Get your API token from https://replicate.com/account/api-tokens"
            )

        if not self.admin_api_key:
            missing.append("ADMIN_API_KEY: Shared secret for the process-next admin endpoint")

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        renderer_processors = [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer_processors = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *renderer_processors,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
