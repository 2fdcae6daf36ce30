from fastapi import FastAPI

from shared.errors import install_error_handlers
from shared.observability import setup_observability

from .router import public_router, router

order_app = FastAPI(title="Order Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(order_app, "order_service")
install_error_handlers(order_app)

order_app.include_router(public_router)
order_app.include_router(router)
