"""Token authentication service."""
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from imagegate.database import Database
from imagegate.errors import ErrorKind, ServiceError
from imagegate.models.user import User, utcnow
from imagegate.utils.security import mask_token

log = logging.getLogger(__name__)


class AuthService:
    """Resolves opaque bearer tokens to users."""

    def __init__(self, db: Database):
        self.db = db

    async def verify(self, token: str | None) -> User:
        """
        Look up the user owning ``token`` and stamp their last login.

        Raises:
            ServiceError(INVALID_INPUT): token missing or blank
            ServiceError(NOT_FOUND): no user holds this token
        """
        if not isinstance(token, str) or not token.strip():
            raise ServiceError(ErrorKind.INVALID_INPUT, "Token required")
        token = token.strip()

        async with self.db.session() as session:
            result = await session.execute(select(User).where(User.token == token).limit(1))
            user = result.scalar_one_or_none()
        if user is None:
            log.info("Rejected unknown token %s", mask_token(token))
            raise ServiceError(ErrorKind.NOT_FOUND, "Invalid token")

        await self._stamp_login(user)
        return user

    async def _stamp_login(self, user: User) -> None:
        """Record the login time in a unit of work of its own.

        ``last_login`` is informational; a failed stamp must not lock the user out.
        """
        user_id = user.id
        now = utcnow()
        try:
            async with self.db.session() as session:
                await session.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(last_login=now)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except (SQLAlchemyError, ServiceError) as exc:
            log.warning("Could not update last_login for user %s: %s", user_id, exc)
            return
        user.last_login = now
