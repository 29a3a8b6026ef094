"""User and admin schemas for request/response validation."""
from datetime import datetime

from pydantic import BaseModel, Field


class VerifyRequest(BaseModel):
    """Token sent in the body instead of a header."""
    token: str | None = None


class VerifyResponse(BaseModel):
    """Result of a successful token verification."""
    user_id: str = Field(alias="userId")
    credits_balance: int = Field(alias="creditsBalance")

    model_config = {"populate_by_name": True}


class UserCreate(BaseModel):
    """Schema for provisioning a new token."""
    initial_credits: int = Field(0, ge=0, alias="initialCredits")

    model_config = {"populate_by_name": True}


class CreditsAdd(BaseModel):
    """Schema for an admin credit grant."""
    user_token: str = Field(..., min_length=1, alias="userToken")
    amount: int = Field(..., gt=0)

    model_config = {"populate_by_name": True}


class UserResponse(BaseModel):
    """Schema for user response (admin only, includes the token)."""
    id: str = Field(serialization_alias="userId")
    token: str
    credits_balance: int = Field(serialization_alias="creditsBalance")
    created_at: datetime = Field(serialization_alias="createdAt")
    last_login: datetime | None = Field(None, serialization_alias="lastLogin")

    model_config = {"from_attributes": True}


class TransactionResponse(BaseModel):
    """Schema for an audit log entry."""
    id: int
    user_id: str = Field(serialization_alias="userId")
    operation: str
    model: str
    credits_used: int = Field(serialization_alias="creditsUsed")
    credits_added: int = Field(serialization_alias="creditsAdded")
    credits_remaining: int = Field(serialization_alias="creditsRemaining")
    success: bool
    error_message: str | None = Field(None, serialization_alias="errorMessage")
    prompt: str | None = None
    requested_count: int = Field(serialization_alias="requestedCount")
    actual_count: int = Field(serialization_alias="actualCount")
    timestamp: datetime

    model_config = {"from_attributes": True}
