from fastapi import APIRouter

from studex.api.v1.health import router as health_router
from studex.api.v1.contracts import router as contracts_router
from studex.api.v1.disputes import router as disputes_router
from studex.api.v1.accounts import router as accounts_router
from studex.api.v1.notifications import router as notifications_router
from studex.api.v1.admin.contracts import router as admin_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])

# ------------------------------------------------------------------
# ESCROW
# ------------------------------------------------------------------
v1_router.include_router(contracts_router, tags=["contracts"])
v1_router.include_router(disputes_router, tags=["disputes"])

# ------------------------------------------------------------------
# WALLET / LEDGER
# ------------------------------------------------------------------
v1_router.include_router(accounts_router, tags=["accounts"])
v1_router.include_router(notifications_router, tags=["notifications"])

# ------------------------------------------------------------------
# ADMIN
# ------------------------------------------------------------------
v1_router.include_router(admin_router, tags=["admin"])
