from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Account signup
    signup,
    # Referrals (invites, verification, analytics)
    referrals,
    # Payment provider webhooks
    webhooks,
    # Admin screens
    admin,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Signup (Public) ====================
api_router.include_router(
    signup.router,
    tags=["Signup"]
)

# ==================== Referrals ====================
api_router.include_router(
    referrals.router,
    tags=["Referrals"]
)

# ==================== Webhooks (Payment Provider) ====================
api_router.include_router(
    webhooks.router,
    tags=["Webhooks"]
)

# ==================== Admin ====================
api_router.include_router(
    admin.router,
    tags=["Admin"]
)

# Public landing pages (/p/{code}, /c/{code}) are mounted at the root in main.py
landing_router = referrals.landing_router
