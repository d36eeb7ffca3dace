"""Retro item model (one feedback note)."""

import enum
from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, Enum, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from retro.models.base import Base

if TYPE_CHECKING:
    from retro.models.like import ItemLike


class Category(str, enum.Enum):
    """Board columns. Closed set, fixed at creation time."""
    GOOD = "good"           # What went well
    IMPROVE = "improve"     # What to improve
    FEEDBACK = "feedback"   # General feedback


# Spellings accepted on input that map onto a canonical category
CATEGORY_ALIASES = {
    "bad": Category.IMPROVE,
}


class RetroItem(Base):
    """A feedback note posted to the board.

    Items are never edited or deleted. ``like_count`` is maintained by the
    like ledger in the same transaction as the ``item_likes`` row change.
    """

    __tablename__ = "retro_items"
    __table_args__ = (
        CheckConstraint("like_count >= 0", name="ck_retro_items_like_count_non_negative"),
        {"sqlite_autoincrement": True},
    )

    category: Mapped[Category] = mapped_column(Enum(Category), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    likes: Mapped[List["ItemLike"]] = relationship(
        "ItemLike",
        back_populates="item",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<RetroItem {self.id} ({self.category.value}) likes={self.like_count}>"
