"""Item and like API endpoints.

Every mutation made over HTTP is broadcast to the WebSocket sessions exactly
like one made over the socket.
"""

import logging
from typing import List

from litestar import Controller, get, post
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from retro.board import Board
from retro.realtime import events
from retro.schemas import ItemResponse, LikeChangedResponse, UserLikesResponse

logger = logging.getLogger("Retro.items")


# --- Request Schemas ---

class CreateItemRequest(BaseModel):
    """Request to post a note."""
    category: str = Field(description="good, improve or feedback")
    text: str = Field(description="Note content")


class ToggleLikeRequest(BaseModel):
    """Request to like or unlike an item."""
    user_id: str = Field(description="Client-generated identity token")


# --- Controllers ---

class ItemsController(Controller):
    """API endpoints for board items."""

    path = "/api/items"
    tags = ["items"]

    @get("/")
    async def list_items(self, session: AsyncSession, board: Board) -> List[ItemResponse]:
        """Ranked feed: most liked first, newest first among equals."""
        items = await board.store.list_items(session)
        return [ItemResponse.model_validate(i) for i in items]

    @post("/")
    async def create_item(
        self,
        data: CreateItemRequest,
        session: AsyncSession,
        board: Board,
    ) -> ItemResponse:
        """Post a note and broadcast it."""
        item = await board.store.create_item(session, data.category, data.text)
        response = ItemResponse.model_validate(item)
        await board.hub.publish(events.item_created(item))
        return response

    @post("/{item_id:int}/like")
    async def toggle_like(
        self,
        item_id: int,
        data: ToggleLikeRequest,
        session: AsyncSession,
        board: Board,
    ) -> LikeChangedResponse:
        """Toggle the caller's like on an item and broadcast the new count."""
        toggle = await board.ledger.toggle_like(session, item_id, data.user_id)
        await board.hub.publish(events.item_like_changed(toggle.item, data.user_id, toggle.action))
        return LikeChangedResponse(
            item=ItemResponse.model_validate(toggle.item),
            acting_user_id=data.user_id,
            action=toggle.action,
        )


class UsersController(Controller):
    """Per-user views."""

    path = "/api/users"
    tags = ["users"]

    @get("/{user_id:str}/likes")
    async def get_user_likes(self, user_id: str, session: AsyncSession, board: Board) -> UserLikesResponse:
        """Item ids the user currently likes."""
        item_ids = await board.ledger.get_liked_item_ids(session, user_id)
        return UserLikesResponse(item_ids=sorted(item_ids))
