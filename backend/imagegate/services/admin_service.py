"""User provisioning and credit administration."""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from imagegate.database import Database
from imagegate.errors import ErrorKind, ServiceError
from imagegate.models.user import User
from imagegate.services.billing_service import BillingService
from imagegate.utils.security import generate_token

log = logging.getLogger(__name__)

TOKEN_ATTEMPTS = 3


class AdminService:
    """Operator-only actions. Credit grants go through BillingService so
    they appear in the transaction log."""

    def __init__(self, db: Database, billing: BillingService | None = None):
        self.db = db
        self.billing = billing or BillingService(db)

    async def create_user(self, initial_credits: int = 0) -> User:
        """Provision a user with a fresh random token."""
        if initial_credits < 0:
            raise ServiceError(ErrorKind.INVALID_INPUT, "Initial credits must not be negative")

        user = None
        for _ in range(TOKEN_ATTEMPTS):
            candidate = User(token=generate_token(), credits_balance=0)
            try:
                async with self.db.session() as session:
                    session.add(candidate)
                    await session.commit()
            except IntegrityError:
                log.warning("Token collision while creating user, retrying")
                continue
            user = candidate
            break
        if user is None:
            raise ServiceError(ErrorKind.INTERNAL, "Could not allocate a unique token")

        if initial_credits > 0:
            user.credits_balance = await self.billing.add_credits(
                user.id, initial_credits, note="initial credits",
            )
        log.info("Created user %s with %d credits", user.id, user.credits_balance)
        return user

    async def add_credits(self, user_token: str, amount: int) -> User:
        """Top up the user owning ``user_token``."""
        user = await self.get_user_by_token(user_token)
        user.credits_balance = await self.billing.add_credits(user.id, amount, note="admin top-up")
        return user

    async def get_user_by_token(self, user_token: str) -> User:
        token = (user_token or "").strip()
        if not token:
            raise ServiceError(ErrorKind.INVALID_INPUT, "User token required")
        async with self.db.session() as session:
            result = await session.execute(select(User).where(User.token == token).limit(1))
            user = result.scalar_one_or_none()
        if user is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "User not found")
        return user

    async def list_users(self, limit: int = 500) -> list[User]:
        """All users, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(User).order_by(User.created_at.desc()).limit(limit)
            )
            return list(result.scalars().all())
