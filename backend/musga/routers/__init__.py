"""Musga - API Routers"""
from .auth import router as auth_router
from .vocals import router as vocals_router
from .payments import router as payments_router

__all__ = [
    "auth_router",
    "vocals_router",
    "payments_router",
]
