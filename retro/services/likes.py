"""Like ledger: per-(item, user) toggle with a derived like counter."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Set

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from retro.errors import NotFoundError, PersistenceError, ValidationError
from retro.models import ItemLike, RetroItem
from retro.schemas import LikeAction
from retro.utils.logging import debug_log

logger = logging.getLogger("Retro.likes")

MAX_USER_ID_LENGTH = 100

# An IntegrityError on insert means another writer liked the same pair
# between our delete and insert; one retry then sees the row and unlikes.
MAX_TOGGLE_ATTEMPTS = 2


@dataclass
class LikeToggle:
    """Outcome of a toggle: the item with its refreshed count and what happened."""
    item: RetroItem
    action: LikeAction


def validate_user_id(user_id: object) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id must be a non-empty string")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise ValidationError(f"user_id must be at most {MAX_USER_ID_LENGTH} characters")
    return user_id


class LikeLedger:
    """
    Tracks who liked what and keeps ``RetroItem.like_count`` in step.

    Each pair has two states (not-liked, liked) and ``toggle_like`` is the
    only transition. The row change and the counter change commit together.
    Toggles are applied one at a time through the write sequencer, which is
    FIFO, so repeated toggles on one pair are processed in arrival order.
    """

    def __init__(self, write_lock: Optional[asyncio.Lock] = None):
        self._write_lock = write_lock or asyncio.Lock()

    async def toggle_like(self, session: AsyncSession, item_id: int, user_id: str) -> LikeToggle:
        """Flip the like state of (item_id, user_id) and return the refreshed item."""
        user_id = validate_user_id(user_id)

        async with self._write_lock:
            for attempt in range(1, MAX_TOGGLE_ATTEMPTS + 1):
                try:
                    action = await self._apply_toggle(session, item_id, user_id)
                    await session.commit()
                    break
                except IntegrityError as e:
                    await session.rollback()
                    if attempt == MAX_TOGGLE_ATTEMPTS:
                        logger.error(f"Like toggle conflict for item {item_id} persisted: {e}")
                        raise PersistenceError("Could not update like") from e
                    logger.warning(f"Concurrent like on item {item_id} by {user_id}, retrying toggle")
                except NotFoundError:
                    await session.rollback()
                    raise
                except SQLAlchemyError as e:
                    await session.rollback()
                    logger.error(f"Failed to toggle like on item {item_id}: {e}")
                    raise PersistenceError("Could not update like") from e

            try:
                item = await session.get(RetroItem, item_id, populate_existing=True)
            except SQLAlchemyError as e:
                logger.error(f"Failed to reload item {item_id} after like toggle: {e}")
                raise PersistenceError("Could not load item") from e

        debug_log(f"User {user_id} {action.value} item {item_id} (likes={item.like_count})")
        return LikeToggle(item=item, action=action)

    async def _apply_toggle(self, session: AsyncSession, item_id: int, user_id: str) -> LikeAction:
        exists = await session.execute(select(RetroItem.id).where(RetroItem.id == item_id))
        if exists.scalar_one_or_none() is None:
            raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})

        # Conditional delete: a removed row means the pair was liked
        removed = await session.execute(
            delete(ItemLike)
            .where(ItemLike.item_id == item_id, ItemLike.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        if removed.rowcount:
            action, delta = LikeAction.UNLIKED, -1
        else:
            session.add(ItemLike(item_id=item_id, user_id=user_id))
            await session.flush()
            action, delta = LikeAction.LIKED, 1

        await session.execute(
            update(RetroItem)
            .where(RetroItem.id == item_id)
            .values(like_count=RetroItem.like_count + delta)
            .execution_options(synchronize_session=False)
        )
        return action

    async def get_liked_item_ids(self, session: AsyncSession, user_id: str) -> Set[int]:
        """Item ids currently liked by ``user_id``; empty for unknown users."""
        if not isinstance(user_id, str) or not user_id:
            return set()
        try:
            result = await session.execute(
                select(ItemLike.item_id).where(ItemLike.user_id == user_id)
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to load likes for user {user_id}: {e}")
            raise PersistenceError("Could not load likes") from e
        return set(result.scalars().all())
