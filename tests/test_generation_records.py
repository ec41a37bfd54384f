from datetime import datetime, timedelta, timezone

import pytest

from hairstyle_api.generations.models import GenerationStatus
from hairstyle_api.generations.service import GenerationRecordStore, MAX_ERROR_MESSAGE_LENGTH


@pytest.mark.asyncio
async def test_create_starts_in_processing_with_trimmed_prompt(db_session):
    store = GenerationRecordStore(db_session)

    record_id = await store.create("user-1", "  curly bob  ", cost=1)

    record = await store.get(record_id)
    assert record.status == GenerationStatus.PROCESSING
    assert record.prompt == "curly bob"
    assert record.credit_cost == 1
    assert record.completed_at is None


@pytest.mark.asyncio
async def test_mark_completed_sets_provider_and_time(db_session):
    store = GenerationRecordStore(db_session)
    record_id = await store.create("user-1", "buzz cut", cost=1)

    assert await store.mark_completed(record_id, "wavespeed", 1234) is True

    record = await store.get(record_id)
    assert record.status == GenerationStatus.COMPLETED
    assert record.provider == "wavespeed"
    assert record.processing_time_ms == 1234
    assert record.completed_at is not None


@pytest.mark.asyncio
async def test_mark_failed_truncates_error(db_session):
    store = GenerationRecordStore(db_session)
    record_id = await store.create("user-1", "mohawk", cost=1)

    await store.mark_failed(record_id, "e" * 2000)

    record = await store.get(record_id)
    assert record.status == GenerationStatus.FAILED
    assert len(record.error_message) == MAX_ERROR_MESSAGE_LENGTH


@pytest.mark.asyncio
async def test_terminal_state_is_written_once(db_session):
    store = GenerationRecordStore(db_session)
    record_id = await store.create("user-1", "pixie cut", cost=1)

    assert await store.mark_failed(record_id, "provider down") is True
    assert await store.mark_completed(record_id, "gemini", 10) is False

    record = await store.get(record_id)
    assert record.status == GenerationStatus.FAILED
    assert record.provider is None


@pytest.mark.asyncio
async def test_list_for_user_is_scoped_and_paged(db_session):
    store = GenerationRecordStore(db_session)
    for i in range(3):
        await store.create("user-1", f"style {i}", cost=1)
    await store.create("user-2", "other", cost=1)

    records = await store.list_for_user("user-1", limit=2)

    assert len(records) == 2
    assert all(r.user_id == "user-1" for r in records)
    assert await store.count_for_user("user-1") == 3


@pytest.mark.asyncio
async def test_find_stale_processing_only_returns_old_open_records(db_session):
    store = GenerationRecordStore(db_session)
    open_id = await store.create("user-1", "open", cost=1)
    done_id = await store.create("user-1", "done", cost=1)
    await store.mark_completed(done_id, "wavespeed", 5)

    future = datetime.now(timezone.utc) + timedelta(minutes=10)
    past = datetime.now(timezone.utc) - timedelta(minutes=10)

    assert [r.id for r in await store.find_stale_processing(future)] == [open_id]
    assert await store.find_stale_processing(past) == []
