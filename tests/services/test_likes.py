"""Tests for the like ledger's toggle semantics and concurrency."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from retro.errors import NotFoundError, PersistenceError, ValidationError
from retro.models import ItemLike, RetroItem
from retro.schemas import LikeAction


async def make_item(session_maker, store, text="note"):
    async with session_maker() as session:
        item = await store.create_item(session, "good", text)
    return item.id


async def toggle(session_maker, ledger, item_id, user_id):
    async with session_maker() as session:
        result = await ledger.toggle_like(session, item_id, user_id)
    return result


@pytest.mark.asyncio
async def test_like_then_unlike(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)

    first = await toggle(session_maker, ledger, item_id, "U1")
    assert first.action == LikeAction.LIKED
    assert first.item.like_count == 1

    second = await toggle(session_maker, ledger, item_id, "U1")
    assert second.action == LikeAction.UNLIKED
    assert second.item.like_count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("calls", [1, 2, 5, 8])
async def test_repeated_toggles_track_parity(session_maker, store_and_ledger, calls):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)

    previous = 0
    for n in range(1, calls + 1):
        result = await toggle(session_maker, ledger, item_id, "U1")
        assert abs(result.item.like_count - previous) == 1
        assert result.item.like_count >= 0
        previous = result.item.like_count
        assert result.action == (LikeAction.LIKED if n % 2 else LikeAction.UNLIKED)

    async with session_maker() as session:
        liked = await ledger.get_liked_item_ids(session, "U1")
    assert (item_id in liked) == (calls % 2 == 1)
    assert previous == calls % 2


@pytest.mark.asyncio
async def test_concurrent_likes_from_many_users(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)
    users = [f"user-{n}" for n in range(12)]

    results = await asyncio.gather(*(toggle(session_maker, ledger, item_id, u) for u in users))
    assert all(r.action == LikeAction.LIKED for r in results)

    # Half of them change their mind, concurrently
    await asyncio.gather(*(toggle(session_maker, ledger, item_id, u) for u in users[::2]))

    async with session_maker() as session:
        item = await store.get_item(session, item_id)
    assert item.like_count == len(users) - len(users[::2])


@pytest.mark.asyncio
async def test_concurrent_duplicate_toggles_same_user_apply_in_order(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)

    results = await asyncio.gather(*(toggle(session_maker, ledger, item_id, "U1") for _ in range(3)))

    assert [r.action for r in results] == [LikeAction.LIKED, LikeAction.UNLIKED, LikeAction.LIKED]
    assert [r.item.like_count for r in results] == [1, 0, 1]


@pytest.mark.asyncio
async def test_toggle_unknown_item(session_maker, store_and_ledger):
    _, ledger = store_and_ledger
    async with session_maker() as session:
        with pytest.raises(NotFoundError):
            await ledger.toggle_like(session, 4242, "U1")
        assert await ledger.get_liked_item_ids(session, "U1") == set()


@pytest.mark.asyncio
async def test_toggle_requires_user_id(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)
    async with session_maker() as session:
        with pytest.raises(ValidationError):
            await ledger.toggle_like(session, item_id, "  ")


@pytest.mark.asyncio
async def test_liked_item_ids_per_user_and_idempotent(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    a = await make_item(session_maker, store, "a")
    b = await make_item(session_maker, store, "b")
    await toggle(session_maker, ledger, a, "U1")
    await toggle(session_maker, ledger, b, "U1")
    await toggle(session_maker, ledger, b, "U2")

    async with session_maker() as session:
        first = await ledger.get_liked_item_ids(session, "U1")
        second = await ledger.get_liked_item_ids(session, "U1")
        other = await ledger.get_liked_item_ids(session, "U2")
        unknown = await ledger.get_liked_item_ids(session, "nobody")

    assert first == second == {a, b}
    assert other == {b}
    assert unknown == set()


@pytest.mark.asyncio
async def test_failed_commit_rolls_back_toggle(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)
    await toggle(session_maker, ledger, item_id, "U1")

    async with session_maker() as session:
        failing_commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))
        with patch.object(session, "commit", failing_commit):
            with pytest.raises(PersistenceError):
                await ledger.toggle_like(session, item_id, "U2")
        failing_commit.assert_awaited_once()

    async with session_maker() as session:
        item = await store.get_item(session, item_id)
        assert item.like_count == 1
        assert await ledger.get_liked_item_ids(session, "U1") == {item_id}
        assert await ledger.get_liked_item_ids(session, "U2") == set()

    # The ledger is still usable afterwards
    result = await toggle(session_maker, ledger, item_id, "U2")
    assert result.action == LikeAction.LIKED
    assert result.item.like_count == 2


@pytest.mark.asyncio
async def test_insert_conflict_retries_and_sees_competing_like(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)

    async def like_from_other_writer():
        async with session_maker() as other:
            other.add(ItemLike(item_id=item_id, user_id="U1"))
            await other.execute(
                update(RetroItem).where(RetroItem.id == item_id).values(like_count=RetroItem.like_count + 1)
            )
            await other.commit()

    async with session_maker() as session:
        real_flush = session.flush
        real_rollback = session.rollback
        conflicts = []

        async def flush_with_conflict(*args, **kwargs):
            if not conflicts:
                conflicts.append(item_id)
                raise IntegrityError("INSERT INTO item_likes", {}, Exception("UNIQUE constraint failed"))
            return await real_flush(*args, **kwargs)

        async def rollback_then_other_writer_commits():
            await real_rollback()
            await like_from_other_writer()

        with patch.object(session, "flush", flush_with_conflict), \
                patch.object(session, "rollback", rollback_then_other_writer_commits):
            result = await ledger.toggle_like(session, item_id, "U1")

    assert conflicts == [item_id]
    assert result.action == LikeAction.UNLIKED
    assert result.item.like_count == 0
    async with session_maker() as session:
        assert await ledger.get_liked_item_ids(session, "U1") == set()


@pytest.mark.asyncio
async def test_reload_failure_after_toggle_is_persistence_error(session_maker, store_and_ledger):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)

    async with session_maker() as session:
        failing_get = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("database is locked")))
        with patch.object(session, "get", failing_get):
            with pytest.raises(PersistenceError):
                await ledger.toggle_like(session, item_id, "U1")


@pytest.mark.asyncio
async def test_toggle_detail_logged_only_in_debug_mode(session_maker, store_and_ledger, caplog, monkeypatch):
    store, ledger = store_and_ledger
    item_id = await make_item(session_maker, store)
    caplog.set_level("DEBUG", logger="Retro")

    monkeypatch.setenv("APP_DEBUG", "false")
    await toggle(session_maker, ledger, item_id, "quiet")
    assert "User quiet liked" not in caplog.text

    monkeypatch.setenv("APP_DEBUG", "true")
    await toggle(session_maker, ledger, item_id, "loud")
    assert f"User loud liked item {item_id} (likes=2)" in caplog.text
