"""
API v1 routers.
"""

from fastapi import APIRouter

from .credits import router as credits_router

credits_router_v1 = APIRouter(prefix="/v1")
credits_router_v1.include_router(credits_router)  # Already has /credits prefix

__all__ = ["credits_router", "credits_router_v1"]
