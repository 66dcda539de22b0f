from fastapi import APIRouter
from app.api.v1.endpoints import sessions, uploads

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(uploads.router, prefix="/uploads", tags=["Uploads"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])

__all__ = ["api_router"]
