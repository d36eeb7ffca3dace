"""Retro board database models."""

from retro.models.base import Base
from retro.models.item import RetroItem, Category, CATEGORY_ALIASES
from retro.models.like import ItemLike

__all__ = [
    "Base",
    "RetroItem",
    "Category",
    "CATEGORY_ALIASES",
    "ItemLike",
]
