"""Pydantic schemas."""
from imagegate.schemas.generation import (
    GenerateRequest,
    GenerateResponse,
    ImageInput,
    ModelInfo,
)
from imagegate.schemas.user import (
    CreditsAdd,
    TransactionResponse,
    UserCreate,
    UserResponse,
    VerifyRequest,
    VerifyResponse,
)

__all__ = [
    "GenerateRequest",
    "GenerateResponse",
    "ImageInput",
    "ModelInfo",
    "CreditsAdd",
    "TransactionResponse",
    "UserCreate",
    "UserResponse",
    "VerifyRequest",
    "VerifyResponse",
]
