"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level for the admin router
(require_admin on every route). Realtime routes take the identity as a
parameter because they need the user id itself. Health is open.
"""

from fastapi import APIRouter, Depends

from stablehand.api.admin import router as admin_router
from stablehand.api.health import router as health_router
from stablehand.api.realtime import router as realtime_router
from stablehand.auth.dependencies import require_admin

api_router = APIRouter(prefix="/api")

# Open routes — no auth required
api_router.include_router(health_router, tags=["health"])

# Authenticated routes
api_router.include_router(realtime_router, tags=["realtime"])
api_router.include_router(admin_router, tags=["admin"], dependencies=[Depends(require_admin)])
