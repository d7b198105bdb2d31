"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Health and auth routers are open (no auth required). Users and
trips resolve the caller through get_current_principal inside their
handlers, since they also need the principal's account id.
"""

from fastapi import APIRouter

from wayfarer.api.auth import router as auth_router
from wayfarer.api.health import router as health_router
from wayfarer.api.trips import router as trips_router
from wayfarer.api.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes: require a valid access token
api_router.include_router(users_router, tags=["users"])
api_router.include_router(trips_router, tags=["trips"])
