from fastapi import APIRouter

from app.api.v1.health import router as health_router
from app.api.v1.auth import router as auth_router

# SALES
from app.api.v1.unit_inventory import router as unit_inventory_router
from app.api.v1.orders import router as orders_router
from app.api.v1.payments import router as payments_router
from app.api.v1.deeds import router as deeds_router

# ADMIN
from app.api.v1.admin.orders import router as admin_orders_router
from app.api.v1.admin.mints import router as admin_mints_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(auth_router, tags=["auth"])

# ------------------------------------------------------------------
# SALES / SETTLEMENT
# ------------------------------------------------------------------
v1_router.include_router(unit_inventory_router, tags=["inventory"])
v1_router.include_router(orders_router, tags=["orders"])
v1_router.include_router(payments_router, tags=["payments"])
v1_router.include_router(deeds_router, tags=["deeds"])

# ------------------------------------------------------------------
# ADMIN
# ------------------------------------------------------------------
v1_router.include_router(admin_orders_router, tags=["admin"])
v1_router.include_router(admin_mints_router, tags=["admin"])
