"""
Internal service-to-service API key (X-Internal-API-Key).

Falls back to an insecure default with a loud warning so local development
works without a .env file, while production misconfiguration is surfaced.
"""
import secrets
import warnings
from functools import lru_cache

from shared.config.settings import get_settings

INSECURE_DEFAULT_KEY = "insecure-default-change-me"


@lru_cache
def internal_api_key() -> str:
    key = get_settings().internal_api_key
    if not key:
        warnings.warn(
            "INTERNAL_API_KEY is not set. Using an insecure default. Set this env var in production!",
            stacklevel=2,
        )
        return INSECURE_DEFAULT_KEY
    return key


def verify_api_key(provided_key: str | None) -> bool:
    """Constant-time comparison against the cluster key."""
    if not provided_key:
        return False
    return secrets.compare_digest(provided_key.encode("utf-8"), internal_api_key().encode("utf-8"))
