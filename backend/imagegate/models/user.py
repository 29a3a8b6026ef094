"""User database model."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from imagegate.database import Base


def _new_user_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A plugin user identified solely by an opaque bearer token."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credits_balance >= 0", name="ck_users_credits_balance_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_user_id)
    token: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)

    # Credits system
    credits_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} credits={self.credits_balance}>"
