from fastapi import FastAPI

from shared.errors import install_error_handlers
from shared.observability import setup_observability

from .router import public_router, router

tracking_app = FastAPI(title="Tracking Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(tracking_app, "tracking_service")
install_error_handlers(tracking_app)

tracking_app.include_router(public_router)
tracking_app.include_router(router)
