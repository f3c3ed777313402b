"""API routes for the FastAPI application."""

from docbill.api.router import TrailingSlashRouter
from docbill.api.v1.endpoints import admin, billing, documents, health, subscriptions

api_router = TrailingSlashRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
api_router.include_router(documents.router, tags=["documents"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
