import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _default_database_url() -> str:
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    host = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    port = os.getenv("POSTGRES_PORT", "5433")
    name = os.getenv("POSTGRES_DB", "fulfillment")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_echo: bool

    order_channel: str

    payment_api_url: str
    payment_api_key: str
    payment_webhook_secret: str
    payment_currency: str
    payment_timeout_seconds: float

    carrier_adapter: str
    carrier_api_url: str
    carrier_client_id: str
    carrier_client_secret: str
    carrier_auth_timeout_seconds: float
    carrier_fetch_timeout_seconds: float
    carrier_failure_threshold: int
    carrier_recovery_timeout_seconds: float
    carrier_max_retries: int
    carrier_retry_base_delay: float
    carrier_retry_max_delay: float
    tracking_cache_ttl_minutes: int

    notification_url: str
    internal_api_key: str

    otel_enabled: bool
    otlp_endpoint: str


@lru_cache
def get_settings() -> Settings:
    """Read the environment once per process. Call ``get_settings.cache_clear()`` to re-read."""
    return Settings(
        database_url=os.getenv("DATABASE_URL") or _default_database_url(),
        db_echo=_env_bool("DB_ECHO", False),
        order_channel=os.getenv("ORDER_CHANNEL", "PWA"),
        payment_api_url=os.getenv("PAYMENT_API_URL", "https://sandbox-merchant.revolut.com/api/1.0"),
        payment_api_key=os.getenv("PAYMENT_API_KEY", ""),
        payment_webhook_secret=os.getenv("PAYMENT_WEBHOOK_SECRET", ""),
        payment_currency=os.getenv("PAYMENT_CURRENCY", "GBP"),
        payment_timeout_seconds=float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "5")),
        carrier_adapter=os.getenv("CARRIER_ADAPTER", "http"),
        carrier_api_url=os.getenv("CARRIER_API_URL", "https://api.royalmail.com"),
        carrier_client_id=os.getenv("CARRIER_CLIENT_ID", ""),
        carrier_client_secret=os.getenv("CARRIER_CLIENT_SECRET", ""),
        carrier_auth_timeout_seconds=float(os.getenv("CARRIER_AUTH_TIMEOUT_SECONDS", "5")),
        carrier_fetch_timeout_seconds=float(os.getenv("CARRIER_FETCH_TIMEOUT_SECONDS", "10")),
        carrier_failure_threshold=int(os.getenv("CARRIER_FAILURE_THRESHOLD", "3")),
        carrier_recovery_timeout_seconds=float(os.getenv("CARRIER_RECOVERY_TIMEOUT_SECONDS", "30")),
        carrier_max_retries=int(os.getenv("CARRIER_MAX_RETRIES", "3")),
        carrier_retry_base_delay=float(os.getenv("CARRIER_RETRY_BASE_DELAY", "1.0")),
        carrier_retry_max_delay=float(os.getenv("CARRIER_RETRY_MAX_DELAY", "30.0")),
        tracking_cache_ttl_minutes=int(os.getenv("TRACKING_CACHE_TTL_MINUTES", "30")),
        notification_url=os.getenv("NOTIFICATION_URL", ""),
        internal_api_key=os.getenv("INTERNAL_API_KEY", ""),
        otel_enabled=_env_bool("OTEL_ENABLED", True),
        otlp_endpoint=os.getenv("OTLP_ENDPOINT", "http://localhost:4317"),
    )
