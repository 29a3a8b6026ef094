"""Service error taxonomy and HTTP status mapping."""
from enum import Enum
from typing import Any

from fastapi import status


class ErrorKind(str, Enum):
    """Discriminant for every failure the service reports to callers."""
    INVALID_INPUT = "invalid_input"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_MODEL = "invalid_model"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    UPSTREAM_ERROR = "upstream_error"
    CONTENT_REJECTED = "content_rejected"
    NO_CANDIDATES = "no_candidates"
    NO_VALID_IMAGES = "no_valid_images"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    TIMEOUT = "timeout"
    BILLING_CONFLICT = "billing_conflict"
    CONNECTIVITY = "connectivity"
    INTERNAL = "internal"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_MODEL: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INSUFFICIENT_CREDITS: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UPSTREAM_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONTENT_REJECTED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NO_CANDIDATES: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NO_VALID_IMAGES: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UPSTREAM_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.BILLING_CONFLICT: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.CONNECTIVITY: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(kind: ErrorKind) -> int:
    """HTTP status code for an error kind."""
    return STATUS_BY_KIND[kind]


class ServiceError(Exception):
    """A classified failure.

    ``details`` is merged into the JSON error body, so keep its values
    JSON-serializable.
    """

    def __init__(self, kind: ErrorKind, message: str, **details: Any):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return status_for(self.kind)

    def to_body(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.kind.value, **self.details}

    def __repr__(self) -> str:
        return f"ServiceError({self.kind.value!r}, {self.message!r})"
