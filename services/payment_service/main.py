from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.errors import install_error_handlers
from shared.observability import setup_observability
from shared.security import limiter

from .router import public_router, router

payment_app = FastAPI(title="Payment Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(payment_app, "payment_service")
install_error_handlers(payment_app)

# --- SECURITY SETUP ---
payment_app.state.limiter = limiter
payment_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

payment_app.include_router(public_router)
payment_app.include_router(router)
