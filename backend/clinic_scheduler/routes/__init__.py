from fastapi import APIRouter

from .admin import router as admin_router
from .appointments import router as appointments_router
from .chat import router as chat_router

api_router = APIRouter()
api_router.include_router(chat_router)
api_router.include_router(appointments_router)
api_router.include_router(admin_router)
