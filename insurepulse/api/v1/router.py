from fastapi import APIRouter

from insurepulse.api.v1.endpoints import portfolio

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(portfolio.router, prefix="/portfolio", tags=["Portfolio"])

__all__ = ["api_router"]
