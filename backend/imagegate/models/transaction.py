"""Credit transaction (audit log) database model."""
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from imagegate.database import Base
from imagegate.models.user import utcnow

PROMPT_EXCERPT_LENGTH = 200
ERROR_MESSAGE_LENGTH = 500


class Operation(str, Enum):
    """Kind of request a transaction belongs to."""
    GENERATE = "generate"
    EDIT = "edit"
    INPAINT = "inpaint"
    TOPUP = "topup"

    @classmethod
    def for_generation(cls, value: str | None) -> "Operation":
        """Parse a client-supplied operation; anything unknown means generate."""
        try:
            op = cls((value or "").strip().lower())
        except ValueError:
            return cls.GENERATE
        return cls.GENERATE if op is cls.TOPUP else op


def excerpt(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


class Transaction(Base):
    """Append-only record of one credit-affecting request.

    ``user_id`` is a lookup key only, with no foreign key,
    so audit rows outlive user rows.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credits_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credits_remaining: Mapped[int] = mapped_column(Integer, nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt: Mapped[str | None] = mapped_column(String(PROMPT_EXCERPT_LENGTH), nullable=True)

    requested_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    actual_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
