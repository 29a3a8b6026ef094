"""Credit settlement and transaction recording."""
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from imagegate.database import Database
from imagegate.errors import ErrorKind, ServiceError
from imagegate.models.transaction import (
    ERROR_MESSAGE_LENGTH,
    PROMPT_EXCERPT_LENGTH,
    Operation,
    Transaction,
    excerpt,
)
from imagegate.models.user import User
from imagegate.services.pricing import cost_for_delivered

log = logging.getLogger(__name__)


class BillingService:
    """Debits credits and keeps the append-only transaction log.

    Balance mutations are single conditional UPDATE statements, so two
    requests for the same user can never both spend the same credits.
    """

    def __init__(self, db: Database):
        self.db = db

    async def settle(
        self,
        user: User,
        operation: Operation,
        model: str,
        requested_count: int,
        actual_count: int,
        prompt: str | None,
    ) -> tuple[int, int]:
        """
        Charge for the images actually delivered.

        Returns:
            ``(credits_used, remaining_balance)``

        Raises:
            ServiceError(BILLING_CONFLICT): the balance no longer covers the
                cost (or the user vanished) by the time of the debit
        """
        cost = cost_for_delivered(model, actual_count)

        async with self.db.session() as session:
            result = await session.execute(
                update(User)
                .where(User.id == user.id, User.credits_balance >= cost)
                .values(credits_balance=User.credits_balance - cost)
                .returning(User.credits_balance)
                .execution_options(synchronize_session=False)
            )
            remaining = result.scalar_one_or_none()
            if remaining is None:
                await session.rollback()
                raise ServiceError(
                    ErrorKind.BILLING_CONFLICT,
                    "Could not charge credits for the generated images",
                    creditsOwed=cost,
                )

            session.add(
                Transaction(
                    user_id=user.id,
                    operation=operation.value,
                    model=model,
                    credits_used=cost,
                    credits_remaining=remaining,
                    success=True,
                    prompt=excerpt(prompt, PROMPT_EXCERPT_LENGTH),
                    requested_count=requested_count,
                    actual_count=actual_count,
                )
            )
            await session.commit()

        user.credits_balance = remaining
        log.info(
            "Charged user %s %d credits for %d/%d images (%s, %s); balance %d",
            user.id, cost, actual_count, requested_count, operation.value, model, remaining,
        )
        return cost, remaining

    async def record_failure(
        self,
        user: User,
        operation: Operation,
        model: str | None,
        requested_count: int,
        prompt: str | None,
        error_message: str,
        actual_count: int = 0,
    ) -> Transaction | None:
        """Append a zero-cost failure record.

        Best-effort: returns None (after logging) if the record could not be
        written, so the caller's original error is what reaches the client.
        """
        try:
            async with self.db.session() as session:
                balance = await session.scalar(
                    select(User.credits_balance).where(User.id == user.id)
                )
                if balance is None:
                    balance = user.credits_balance
                record = Transaction(
                    user_id=user.id,
                    operation=operation.value,
                    model=(model or "")[:100],
                    credits_used=0,
                    credits_remaining=int(balance),
                    success=False,
                    error_message=excerpt(error_message, ERROR_MESSAGE_LENGTH),
                    prompt=excerpt(prompt, PROMPT_EXCERPT_LENGTH),
                    requested_count=requested_count,
                    actual_count=actual_count,
                )
                session.add(record)
                await session.commit()
                return record
        except (SQLAlchemyError, ServiceError) as exc:
            log.error("Could not record failed %s for user %s: %s", operation.value, user.id, exc)
            return None

    async def add_credits(self, user_id: str, amount: int, note: str | None = None) -> int:
        """Grant credits to a user and log the top-up. Returns the new balance."""
        if amount <= 0:
            raise ServiceError(ErrorKind.INVALID_INPUT, "Amount must be a positive integer")

        async with self.db.session() as session:
            result = await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(credits_balance=User.credits_balance + amount)
                .returning(User.credits_balance)
                .execution_options(synchronize_session=False)
            )
            balance = result.scalar_one_or_none()
            if balance is None:
                await session.rollback()
                raise ServiceError(ErrorKind.NOT_FOUND, "User not found")

            session.add(
                Transaction(
                    user_id=user_id,
                    operation=Operation.TOPUP.value,
                    model="admin",
                    credits_added=amount,
                    credits_remaining=balance,
                    success=True,
                    prompt=excerpt(note, PROMPT_EXCERPT_LENGTH),
                )
            )
            await session.commit()

        log.info("Added %d credits to user %s; balance %d", amount, user_id, balance)
        return balance

    async def list_transactions(self, user_id: str, limit: int = 50) -> list[Transaction]:
        """Most recent transactions for a user, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.timestamp.desc(), Transaction.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
