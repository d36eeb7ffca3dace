"""Item store: durable table of feedback notes plus the ranked feed."""

import asyncio
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from retro.errors import NotFoundError, PersistenceError, ValidationError
from retro.models import CATEGORY_ALIASES, Category, RetroItem

logger = logging.getLogger("Retro.items")


def parse_category(value: object) -> Category:
    """Map client input onto the closed category set."""
    if isinstance(value, Category):
        return value
    if not isinstance(value, str):
        raise ValidationError("Category must be a string", details={"category": value})

    key = value.strip().lower()
    if key in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[key]
    try:
        return Category(key)
    except ValueError:
        allowed = ", ".join(c.value for c in Category)
        raise ValidationError(
            f"Unknown category '{value}' (expected one of: {allowed})",
            details={"category": value},
        ) from None


def ranked(stmt):
    """Canonical feed order: most liked first, then newest, then highest id."""
    return stmt.order_by(
        RetroItem.like_count.desc(),
        RetroItem.created_at.desc(),
        RetroItem.id.desc(),
    )


class ItemStore:
    """
    Creates and reads retro items.

    Writes run under the board-wide write sequencer shared with the like
    ledger, so each mutation is one transaction applied in arrival order.
    """

    def __init__(self, write_lock: Optional[asyncio.Lock] = None):
        self._write_lock = write_lock or asyncio.Lock()

    async def create_item(self, session: AsyncSession, category: object, text: object) -> RetroItem:
        """Validate and persist a new item."""
        parsed_category = parse_category(category)
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text must not be empty")
        content = text.strip()

        async with self._write_lock:
            try:
                item = RetroItem(category=parsed_category, text=content, like_count=0)
                session.add(item)
                await session.commit()
                await session.refresh(item)
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to create item in '{parsed_category.value}': {e}")
                raise PersistenceError("Could not save item") from e

        logger.info(f"Item {item.id} created in '{item.category.value}'")
        return item

    async def get_item(self, session: AsyncSession, item_id: int) -> RetroItem:
        try:
            item = await session.get(RetroItem, item_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise PersistenceError("Could not load item") from e
        if item is None:
            raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
        return item

    async def list_items(self, session: AsyncSession) -> List[RetroItem]:
        """Return every item in ranked-feed order."""
        try:
            result = await session.execute(
                ranked(select(RetroItem)).execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to list items: {e}")
            raise PersistenceError("Could not load items") from e
        return list(result.scalars().all())
