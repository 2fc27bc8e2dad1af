"""API routes."""

from fastapi import APIRouter

from app.api.routes import client_merge

api_router = APIRouter()

# Protected routes (auth required)
api_router.include_router(client_merge.router, prefix="/client-merges", tags=["client-merges"])
