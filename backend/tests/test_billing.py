"""Tests for settlement, failure records and top-ups."""
import asyncio

import pytest
from sqlalchemy import select

from imagegate.errors import ErrorKind, ServiceError
from imagegate.models import Transaction, User
from imagegate.models.transaction import Operation
from imagegate.services.billing_service import BillingService
from imagegate.utils.retry import RetryPolicy

PRO = "gemini-3-pro-image-preview"
FLASH = "gemini-2.5-flash-image"


async def balance_of(db, user_id):
    async with db.session() as session:
        return await session.scalar(select(User.credits_balance).where(User.id == user_id))


async def transactions_of(db, user_id):
    return await BillingService(db).list_transactions(user_id)


async def test_settle_charges_for_delivered_images(db, make_user):
    user = await make_user(credits=100)

    cost, remaining = await BillingService(db).settle(user, Operation.EDIT, PRO, 4, 2, "a prompt")

    assert (cost, remaining) == (16, 84)
    assert user.credits_balance == 84
    assert await balance_of(db, user.id) == 84
    [txn] = await transactions_of(db, user.id)
    assert txn.success
    assert txn.operation == "edit"
    assert (txn.credits_used, txn.credits_remaining) == (16, 84)
    assert (txn.requested_count, txn.actual_count) == (4, 2)
    assert txn.prompt == "a prompt"


async def test_settle_conflict_leaves_balance_and_log_untouched(db, make_user):
    user = await make_user(credits=10)

    with pytest.raises(ServiceError) as excinfo:
        await BillingService(db).settle(user, Operation.GENERATE, PRO, 2, 2, "x")

    assert excinfo.value.kind is ErrorKind.BILLING_CONFLICT
    assert excinfo.value.details["creditsOwed"] == 16
    assert await balance_of(db, user.id) == 10
    assert await transactions_of(db, user.id) == []


async def test_concurrent_settles_never_overdraw(db, make_user):
    user = await make_user(credits=12)
    billing = BillingService(db)

    results = await asyncio.gather(
        billing.settle(user, Operation.GENERATE, PRO, 1, 1, "one"),
        billing.settle(user, Operation.GENERATE, PRO, 1, 1, "two"),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, ServiceError)]
    assert len(errors) == 1
    assert errors[0].kind is ErrorKind.BILLING_CONFLICT
    assert await balance_of(db, user.id) == 4
    assert len(await transactions_of(db, user.id)) == 1


async def test_concurrent_settles_both_succeed_when_covered(db, make_user):
    user = await make_user(credits=20)
    billing = BillingService(db)

    await asyncio.gather(
        billing.settle(user, Operation.GENERATE, FLASH, 2, 2, "one"),
        billing.settle(user, Operation.GENERATE, FLASH, 2, 2, "two"),
    )

    assert await balance_of(db, user.id) == 4
    remaining = sorted(t.credits_remaining for t in await transactions_of(db, user.id))
    assert remaining == [4, 12]


async def test_record_failure_is_zero_cost(db, make_user):
    user = await make_user(credits=30)

    record = await BillingService(db).record_failure(
        user, Operation.INPAINT, PRO, 3, "p" * 300, "e" * 600,
    )

    assert record is not None
    [txn] = await transactions_of(db, user.id)
    assert not txn.success
    assert txn.credits_used == 0
    assert txn.credits_remaining == 30
    assert txn.requested_count == 3 and txn.actual_count == 0
    assert len(txn.prompt) == 200
    assert len(txn.error_message) == 500


async def test_record_failure_swallows_store_errors(db, make_user):
    user = await make_user(credits=30)
    await db.close()
    db.url = "sqlite+aiosqlite:////nonexistent-dir/imagegate.db"
    db.retry_policy = RetryPolicy(max_attempts=1, delay=0)

    assert await BillingService(db).record_failure(
        user, Operation.GENERATE, PRO, 1, "x", "boom",
    ) is None


async def test_add_credits_logs_topup(db, make_user):
    user = await make_user(credits=0)

    balance = await BillingService(db).add_credits(user.id, 50, note="welcome")

    assert balance == 50
    [txn] = await transactions_of(db, user.id)
    assert txn.operation == "topup"
    assert (txn.credits_added, txn.credits_used, txn.credits_remaining) == (50, 0, 50)


@pytest.mark.parametrize("amount", [0, -5])
async def test_add_credits_rejects_non_positive(db, make_user, amount):
    user = await make_user(credits=0)

    with pytest.raises(ServiceError) as excinfo:
        await BillingService(db).add_credits(user.id, amount)

    assert excinfo.value.kind is ErrorKind.INVALID_INPUT


async def test_add_credits_unknown_user(db):
    with pytest.raises(ServiceError) as excinfo:
        await BillingService(db).add_credits("missing", 5)

    assert excinfo.value.kind is ErrorKind.NOT_FOUND


async def test_transactions_newest_first(db, make_user):
    user = await make_user(credits=100)
    billing = BillingService(db)
    await billing.settle(user, Operation.GENERATE, FLASH, 1, 1, "first")
    await billing.settle(user, Operation.GENERATE, FLASH, 1, 1, "second")

    txns = await billing.list_transactions(user.id)

    assert [t.prompt for t in txns] == ["second", "first"]
    assert all(isinstance(t, Transaction) for t in txns)
