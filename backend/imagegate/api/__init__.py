"""API routes."""
from fastapi import APIRouter

from imagegate.api import admin, debug, generate, verify

api_router = APIRouter()

api_router.include_router(verify.router, prefix="/verify", tags=["Authentication"])
api_router.include_router(generate.router, tags=["Generation"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
api_router.include_router(debug.router, prefix="/debug", tags=["Diagnostics"])
