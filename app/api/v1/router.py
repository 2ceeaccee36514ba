from fastapi import APIRouter
from app.api.v1.endpoints import customers

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(customers.router, prefix="/customers", tags=["Customers"])

__all__ = ["api_router"]
