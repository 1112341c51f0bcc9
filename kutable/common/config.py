"""Central environment-driven settings shared by all services.

Each service process loads this once at import time. Missing provider or
database credentials fail the process immediately (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "unknown-service"
    log_level: str = "INFO"
    site_url: str = "https://kutable.com"
    redis_url: str = "redis://redis:6379/0"
    postgres_dsn: str
    supabase_url: str
    supabase_service_role_key: str
    stripe_secret_key: str
    stripe_webhook_secret: str
    stripe_api_version: str = "2023-10-16"
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_messaging_service_sid: str
    resend_api_key: str
    resend_from: str
    resend_webhook_secret: str = ""
    notification_url: str = "http://notification:8000"
    notification_public_url: str = ""
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    tracing_enabled: bool = True
    platform_fee_rate: str = "0.01"
    claim_token_ttl_hours: int = 24
    claim_rate_limit_per_minute: int = 10
    notification_max_attempts: int = 3
    notification_retry_batch_size: int = 25
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
