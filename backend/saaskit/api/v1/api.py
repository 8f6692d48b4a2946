"""
API v1 Router
Aggregates all API endpoints.
"""
from fastapi import APIRouter

from saaskit.api.v1.endpoints import billing, entitlements, workspaces

api_router = APIRouter()


@api_router.get("/ping", tags=["Health"])
async def ping():
    """Simple ping endpoint to verify API is responding"""
    return {"message": "pong", "api_version": "v1"}


api_router.include_router(workspaces.router, prefix="/workspaces", tags=["Workspaces"])
api_router.include_router(workspaces.invitations_router, prefix="/invitations", tags=["Invitations"])
api_router.include_router(billing.router, prefix="/billing", tags=["Billing"])
api_router.include_router(entitlements.router, prefix="/entitlements", tags=["Entitlements"])
