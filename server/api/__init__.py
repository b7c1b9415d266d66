"""FastAPI router aggregation."""

from fastapi import APIRouter

from api.auth import router as auth_router
from api.chat import router as chat_router
from api.user import router as user_router
from api.admin import router as admin_router
from api.billing import router as billing_router
from api.subscription import router as subscription_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
api_router.include_router(user_router, prefix="/user", tags=["user"])
api_router.include_router(admin_router, prefix="/admin", tags=["admin"])
api_router.include_router(billing_router, prefix="/billing", tags=["billing"])
api_router.include_router(subscription_router, prefix="/subscription", tags=["subscription"])
