"""API router for version 1."""
from fastapi import APIRouter

from market_notify.api.v1.endpoints import auth, notifications, push, users


api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(push.router)
api_router.include_router(notifications.router)
