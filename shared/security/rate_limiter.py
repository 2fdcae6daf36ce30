from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request


def client_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Webhook callers are unauthenticated processors, so the only stable key is
    the client's IP address (honours X-Forwarded-For when Uvicorn trusts the proxy).
    """
    return f"ip:{get_remote_address(request)}"


# Initialize the Limiter with our custom key function
limiter = Limiter(key_func=client_ip)
