"""Operator API routes (X-Admin-Token)."""
from fastapi import APIRouter, Depends, Query, status

from imagegate.api.deps import Db, require_admin
from imagegate.schemas.user import (
    CreditsAdd,
    TransactionResponse,
    UserCreate,
    UserResponse,
)
from imagegate.services.admin_service import AdminService
from imagegate.services.billing_service import BillingService

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@router.post(
    "/create-user",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    include_in_schema=False,
)
async def create_user(data: UserCreate, db: Db):
    """Provision a new token with optional starting credits."""
    return await AdminService(db).create_user(data.initial_credits)


@router.get("/users", response_model=list[UserResponse])
async def list_users(db: Db, limit: int = Query(500, ge=1, le=5000)):
    """All users, newest first."""
    return await AdminService(db).list_users(limit=limit)


@router.post("/add-credits", response_model=UserResponse)
async def add_credits(data: CreditsAdd, db: Db):
    """Top up the user owning ``userToken``."""
    return await AdminService(db).add_credits(data.user_token, data.amount)


@router.get("/users/{user_id}/transactions", response_model=list[TransactionResponse])
async def list_transactions(user_id: str, db: Db, limit: int = Query(50, ge=1, le=1000)):
    """Audit log for one user, newest first."""
    return await BillingService(db).list_transactions(user_id, limit=limit)
