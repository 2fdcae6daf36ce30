from fastapi import FastAPI

from shared.errors import install_error_handlers
from shared.observability import setup_observability

from .router import public_router, router

inventory_app = FastAPI(title="Inventory Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(inventory_app, "inventory_service")
install_error_handlers(inventory_app)

inventory_app.include_router(public_router)
inventory_app.include_router(router)
