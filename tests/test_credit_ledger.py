import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import event, func, select

from hairstyle_api.credits.models import CreditBalance, CreditTransaction, TransactionType
from hairstyle_api.credits.service import CreditLedger, MAX_PAGE_SIZE
from hairstyle_api.database import Database
from hairstyle_api.error_handlers import InsufficientCreditsException, ValidationException


async def _ledger_sum(session, user_id):
    result = await session.execute(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0))
        .where(CreditTransaction.user_id == user_id)
    )
    return int(result.scalar())


@pytest_asyncio.fixture
async def locking_database(tmp_path):
    """
    SQLite database whose transactions take the write lock up front, so
    concurrent writers queue on the lock instead of failing with SQLITE_BUSY.
    """
    db = Database(f"sqlite:///{tmp_path / 'ledger_race.db'}")

    @event.listens_for(db.engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(db.engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    await db.create_all()
    yield db
    await db.dispose()


@pytest.mark.asyncio
async def test_balance_is_zero_without_row(db_session):
    assert await CreditLedger(db_session).get_balance("nobody") == 0


@pytest.mark.asyncio
async def test_credit_creates_balance_row_and_transaction(db_session):
    ledger = CreditLedger(db_session)

    balance = await ledger.credit("user-1", 5, TransactionType.PURCHASE, "Starter pack")

    assert balance == 5
    assert await ledger.get_balance("user-1") == 5
    transactions = await ledger.list_transactions("user-1")
    assert len(transactions) == 1
    assert transactions[0].amount == 5
    assert transactions[0].balance_after == 5
    assert transactions[0].type == TransactionType.PURCHASE


@pytest.mark.asyncio
async def test_credit_is_additive_on_existing_row(db_session):
    ledger = CreditLedger(db_session)

    await ledger.credit("user-1", 2, TransactionType.PURCHASE, "first")
    balance = await ledger.credit("user-1", 3, TransactionType.ADMIN_ADJUSTMENT, "second")

    assert balance == 5
    rows = await db_session.execute(select(func.count()).select_from(CreditBalance))
    assert rows.scalar() == 1


@pytest.mark.asyncio
async def test_debit_writes_negative_entry(db_session):
    ledger = CreditLedger(db_session)
    await ledger.credit("user-1", 3, TransactionType.SIGNUP_BONUS, "Welcome bonus: 3 credits")

    balance = await ledger.debit("user-1", 1, "Generation: bob cut", reference_id="gen-1")

    assert balance == 2
    debit = await ledger.find_debit("gen-1")
    assert debit.amount == -1
    assert debit.balance_after == 2
    assert debit.type == TransactionType.GENERATION


@pytest.mark.asyncio
async def test_debit_rejects_when_balance_too_low(db_session):
    ledger = CreditLedger(db_session)
    await ledger.credit("user-1", 1, TransactionType.PURCHASE, "one")

    with pytest.raises(InsufficientCreditsException) as exc_info:
        await ledger.debit("user-1", 2, "too expensive")

    assert exc_info.value.available == 1
    assert exc_info.value.status_code == 403
    assert await ledger.get_balance("user-1") == 1
    assert await ledger.count_transactions("user-1") == 1


@pytest.mark.asyncio
async def test_debit_without_balance_row_is_insufficient(db_session):
    with pytest.raises(InsufficientCreditsException) as exc_info:
        await CreditLedger(db_session).debit("ghost", 1, "nothing to spend")

    assert exc_info.value.available == 0


@pytest.mark.asyncio
async def test_non_positive_amounts_are_rejected(db_session):
    ledger = CreditLedger(db_session)

    with pytest.raises(ValidationException):
        await ledger.debit("user-1", 0, "zero")
    with pytest.raises(ValidationException):
        await ledger.credit("user-1", -1, TransactionType.PURCHASE, "negative")


@pytest.mark.asyncio
async def test_balance_matches_sum_of_transactions(db_session):
    ledger = CreditLedger(db_session)

    await ledger.grant_signup_bonus("user-1", 3)
    await ledger.debit("user-1", 1, "gen", reference_id="gen-1")
    await ledger.debit("user-1", 1, "gen", reference_id="gen-2")
    await ledger.refund("user-1", 1, reference_id="gen-2", reason="generation failed - timeout")
    await ledger.credit("user-1", 10, TransactionType.PURCHASE, "pack")

    assert await ledger.get_balance("user-1") == 12
    assert await _ledger_sum(db_session, "user-1") == 12


@pytest.mark.asyncio
async def test_repeated_debits_never_go_negative(db_session):
    ledger = CreditLedger(db_session)
    await ledger.credit("user-1", 3, TransactionType.PURCHASE, "pack")

    successes = 0
    for i in range(5):
        try:
            await ledger.debit("user-1", 1, "gen", reference_id=f"gen-{i}")
            successes += 1
        except InsufficientCreditsException:
            pass

    assert successes == 3
    assert await ledger.get_balance("user-1") == 0
    assert await _ledger_sum(db_session, "user-1") == 0


@pytest.mark.asyncio
async def test_concurrent_debits_on_last_credit(locking_database):
    async with locking_database.session() as session:
        await CreditLedger(session).credit("user-1", 1, TransactionType.PURCHASE, "one")

    async def attempt(reference_id):
        async with locking_database.session() as session:
            try:
                return await CreditLedger(session).debit("user-1", 1, "gen", reference_id=reference_id)
            except InsufficientCreditsException as e:
                return e

    results = await asyncio.gather(attempt("gen-a"), attempt("gen-b"))

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, InsufficientCreditsException)]
    assert successes == [0]
    assert len(failures) == 1

    async with locking_database.session() as session:
        ledger = CreditLedger(session)
        assert await ledger.get_balance("user-1") == 0
        assert await ledger.count_transactions("user-1") == 2


@pytest.mark.asyncio
async def test_refund_is_idempotent_per_reference(db_session):
    ledger = CreditLedger(db_session)
    await ledger.credit("user-1", 1, TransactionType.PURCHASE, "one")
    await ledger.debit("user-1", 1, "gen", reference_id="gen-1")

    first = await ledger.refund("user-1", 1, reference_id="gen-1", reason="generation failed - boom")
    second = await ledger.refund("user-1", 1, reference_id="gen-1", reason="generation failed - boom")

    assert first == 1
    assert second is None
    assert await ledger.get_balance("user-1") == 1
    assert await ledger.has_refund("gen-1")


@pytest.mark.asyncio
async def test_refund_description_is_truncated(db_session):
    ledger = CreditLedger(db_session)

    await ledger.refund("user-1", 1, reference_id="gen-1", reason="x" * 400)

    entry = (await ledger.list_transactions("user-1"))[0]
    assert entry.description.startswith("Refund: ")
    assert len(entry.description) == 255


@pytest.mark.asyncio
async def test_signup_bonus_granted_once(db_session):
    ledger = CreditLedger(db_session)

    assert await ledger.grant_signup_bonus("user-1", 3) == 3
    assert await ledger.grant_signup_bonus("user-1", 3) == 3

    transactions = await ledger.list_transactions("user-1")
    assert len(transactions) == 1
    assert transactions[0].description == "Welcome bonus: 3 credits"


@pytest.mark.asyncio
async def test_list_transactions_clamps_limit_and_pages(db_session):
    ledger = CreditLedger(db_session)
    for i in range(MAX_PAGE_SIZE + 5):
        await ledger.credit("user-1", 1, TransactionType.ADMIN_ADJUSTMENT, f"adj {i}")

    page = await ledger.list_transactions("user-1", limit=500)
    assert len(page) == MAX_PAGE_SIZE

    tail = await ledger.list_transactions("user-1", limit=50, offset=100)
    assert len(tail) == 5
    assert await ledger.count_transactions("user-1") == MAX_PAGE_SIZE + 5
