from .api_key import internal_api_key, verify_api_key
from .dependencies import verify_internal_api_key
from .rate_limiter import client_ip, limiter

__all__ = [
    "internal_api_key",
    "verify_api_key",
    "verify_internal_api_key",
    "limiter",
    "client_ip",
]
