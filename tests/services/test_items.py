"""Tests for the item store and the ranked feed."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from retro.errors import NotFoundError, PersistenceError, ValidationError
from retro.models import Category, RetroItem
from retro.schemas import ItemResponse
from retro.services.items import parse_category


@pytest.mark.asyncio
async def test_create_item_assigns_id_and_timestamp(session_maker, store_and_ledger):
    store, _ = store_and_ledger
    async with session_maker() as session:
        item = await store.create_item(session, "good", "  Shipped on time  ")

    assert item.id is not None
    assert item.category == Category.GOOD
    assert item.text == "Shipped on time"
    assert item.like_count == 0
    assert item.created_at is not None


@pytest.mark.asyncio
async def test_ids_are_monotonic(session_maker, store_and_ledger):
    store, _ = store_and_ledger
    async with session_maker() as session:
        first = await store.create_item(session, "good", "one")
        second = await store.create_item(session, "feedback", "two")
    assert second.id > first.id


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_create_item_rejects_blank_text(session_maker, store_and_ledger, text):
    store, _ = store_and_ledger
    async with session_maker() as session:
        with pytest.raises(ValidationError):
            await store.create_item(session, "good", text)
        assert await store.list_items(session) == []


@pytest.mark.asyncio
async def test_create_item_rejects_unknown_category(session_maker, store_and_ledger):
    store, _ = store_and_ledger
    async with session_maker() as session:
        with pytest.raises(ValidationError, match="Unknown category"):
            await store.create_item(session, "meh", "text")


def test_parse_category_accepts_legacy_alias():
    assert parse_category("bad") == Category.IMPROVE
    assert parse_category(" Improve ") == Category.IMPROVE
    assert parse_category(Category.FEEDBACK) == Category.FEEDBACK
    with pytest.raises(ValidationError):
        parse_category(3)


@pytest.mark.asyncio
async def test_list_items_newest_first_on_equal_likes(session_maker, store_and_ledger):
    store, _ = store_and_ledger
    async with session_maker() as session:
        a = await store.create_item(session, "good", "x")
        b = await store.create_item(session, "bad", "y")
        items = await store.list_items(session)

    assert [i.id for i in items] == [b.id, a.id]
    assert b.category == Category.IMPROVE


@pytest.mark.asyncio
async def test_list_items_ranks_by_likes_then_recency(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    async with session_maker() as session:
        old = await store.create_item(session, "good", "old but liked")
        middle = await store.create_item(session, "improve", "middle")
        new = await store.create_item(session, "feedback", "newest")
        await ledger.toggle_like(session, old.id, "u1")
        await ledger.toggle_like(session, old.id, "u2")
        await ledger.toggle_like(session, middle.id, "u1")

        first = await store.list_items(session)
        second = await store.list_items(session)

    assert [i.id for i in first] == [old.id, middle.id, new.id]
    assert [i.like_count for i in first] == [2, 1, 0]
    assert [i.id for i in second] == [i.id for i in first]


@pytest.mark.asyncio
async def test_list_items_breaks_full_ties_by_id(session_maker, store_and_ledger):
    store, _ = store_and_ledger
    same_moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    async with session_maker() as session:
        session.add_all([
            RetroItem(category=Category.GOOD, text="first", like_count=0, created_at=same_moment),
            RetroItem(category=Category.GOOD, text="second", like_count=0, created_at=same_moment),
        ])
        await session.commit()
        items = await store.list_items(session)

    assert [i.text for i in items] == ["second", "first"]


@pytest.mark.asyncio
async def test_get_item_not_found(session_maker, store_and_ledger):
    store, _ = store_and_ledger
    async with session_maker() as session:
        with pytest.raises(NotFoundError):
            await store.get_item(session, 999)


@pytest.mark.asyncio
async def test_failed_commit_leaves_no_item(session_maker, store_and_ledger):
    store, _ = store_and_ledger
    async with session_maker() as session:
        failing_commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))
        with patch.object(session, "commit", failing_commit):
            with pytest.raises(PersistenceError, match="Could not save item"):
                await store.create_item(session, "good", "lost note")

    async with session_maker() as session:
        assert await store.list_items(session) == []
        kept = await store.create_item(session, "good", "saved note")
    assert kept.text == "saved note"


@pytest.mark.asyncio
async def test_item_response_reads_orm_attributes(session_maker, store_and_ledger):
    store, _ = store_and_ledger
    async with session_maker() as session:
        item = await store.create_item(session, "feedback", "note")

    response = ItemResponse.model_validate(item)
    assert ItemResponse.model_config["from_attributes"] is True
    assert response.id == item.id
    assert response.category == Category.FEEDBACK
    assert response.like_count == 0
