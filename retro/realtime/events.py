"""Builders for the server -> client event payloads."""

from typing import Iterable, List, Optional

from retro.models import RetroItem
from retro.schemas import AggregateResult, ItemResponse, LikeAction

INITIAL_ITEMS = "initial-items"
ITEM_CREATED = "item-created"
ITEM_LIKE_CHANGED = "item-like-changed"
USER_LIKES = "user-likes"
AGGREGATE_UPDATED = "aggregate-updated"
ERROR = "error"
PONG = "pong"


def item_payload(item: RetroItem) -> dict:
    return ItemResponse.model_validate(item).model_dump(mode="json")


def initial_items(items: Iterable[RetroItem]) -> dict:
    return {"type": INITIAL_ITEMS, "items": [item_payload(i) for i in items]}


def item_created(item: RetroItem) -> dict:
    return {"type": ITEM_CREATED, "item": item_payload(item)}


def item_like_changed(item: RetroItem, acting_user_id: str, action: LikeAction) -> dict:
    return {
        "type": ITEM_LIKE_CHANGED,
        "item": item_payload(item),
        "acting_user_id": acting_user_id,
        "action": action.value,
    }


def user_likes(item_ids: Iterable[int]) -> dict:
    return {"type": USER_LIKES, "item_ids": sorted(item_ids)}


def aggregate_updated(result: AggregateResult) -> dict:
    return {"type": AGGREGATE_UPDATED, "aggregate": result.model_dump(mode="json")}


def error(event: str, code: str, message: str) -> dict:
    return {"type": ERROR, "event": event, "code": code, "message": message}


def greeting(items: List[RetroItem], aggregate: Optional[AggregateResult] = None) -> List[dict]:
    """Messages a newly connected session receives before any delta."""
    messages = [initial_items(items)]
    if aggregate is not None:
        messages.append(aggregate_updated(aggregate))
    return messages
