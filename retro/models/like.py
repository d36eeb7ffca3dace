"""Like ledger rows: one per (item, user) pair."""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from retro.models.base import Base

if TYPE_CHECKING:
    from retro.models.item import RetroItem


class ItemLike(Base):
    """A user's endorsement of an item. Deleted (not flagged) on unlike."""

    __tablename__ = "item_likes"
    __table_args__ = (
        UniqueConstraint("item_id", "user_id", name="uq_item_likes_item_user"),
    )

    item_id: Mapped[int] = mapped_column(
        ForeignKey("retro_items.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    # Opaque client-generated token, not authenticated
    user_id: Mapped[str] = mapped_column(String(100), index=True, nullable=False)

    item: Mapped["RetroItem"] = relationship("RetroItem", back_populates="likes")

    def __repr__(self) -> str:
        return f"<ItemLike item={self.item_id} user={self.user_id}>"
