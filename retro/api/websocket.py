"""WebSocket handler for real-time board synchronization."""

import json
import logging
import uuid
from typing import Optional

from litestar import WebSocket, websocket
from litestar.exceptions import SerializationException, WebSocketDisconnect
from pydantic import BaseModel, StrictInt
from pydantic import ValidationError as PydanticValidationError

from retro.board import Board
from retro.errors import RetroError
from retro.realtime import events
from retro.utils.logging import error_log

logger = logging.getLogger("Retro.WebSocket")


# --- Client -> server messages ---

class CreateItemMessage(BaseModel):
    category: str
    text: str


class ToggleLikeMessage(BaseModel):
    item_id: StrictInt
    user_id: str


class GetUserLikesMessage(BaseModel):
    user_id: str


async def board_greeting(board: Board) -> list:
    """Initial items plus the current aggregate, if any."""
    async with board.session_maker() as session:
        items = await board.store.list_items(session)
    return events.greeting(items, board.scheduler.current)


async def handle_create_item(board: Board, data: dict) -> None:
    message = CreateItemMessage.model_validate(data)
    async with board.session_maker() as session:
        item = await board.store.create_item(session, message.category, message.text)
        # Everyone gets the new item, the submitter included, in commit order
        await board.hub.publish(events.item_created(item))


async def handle_toggle_like(board: Board, data: dict) -> None:
    message = ToggleLikeMessage.model_validate(data)
    async with board.session_maker() as session:
        toggle = await board.ledger.toggle_like(session, message.item_id, message.user_id)
        await board.hub.publish(events.item_like_changed(toggle.item, message.user_id, toggle.action))


async def handle_get_user_likes(board: Board, session_id: uuid.UUID, data: dict) -> None:
    message = GetUserLikesMessage.model_validate(data)
    async with board.session_maker() as session:
        item_ids = await board.ledger.get_liked_item_ids(session, message.user_id)
    await board.hub.send_to(session_id, events.user_likes(item_ids))


@websocket("/ws")
async def board_websocket(socket: WebSocket, board: Board) -> None:
    """
    WebSocket endpoint for board synchronization.

    Protocol:
    - Server sends the ranked items (and the latest AI aggregate) on connect
    - Mutations are persisted, then broadcast to every session, sender included
    - Failures are reported to the requesting session only

    Message types (client -> server):
    - {"type": "create-item", "category": "good|improve|feedback", "text": "..."}
    - {"type": "toggle-like", "item_id": 1, "user_id": "..."}
    - {"type": "get-user-likes", "user_id": "..."}
    - {"type": "trigger-aggregation"}
    - {"type": "ping"}

    Message types (server -> client):
    - {"type": "initial-items", "items": [...]}
    - {"type": "item-created", "item": {...}}
    - {"type": "item-like-changed", "item": {...}, "acting_user_id": "...", "action": "liked|unliked"}
    - {"type": "user-likes", "item_ids": [...]}
    - {"type": "aggregate-updated", "aggregate": {...}}
    - {"type": "error", "event": "...", "code": "...", "message": "..."}
    - {"type": "pong"}
    """
    await socket.accept()

    session_id: Optional[uuid.UUID] = None

    try:
        session_id = await board.hub.subscribe(socket, lambda: board_greeting(board))

        # Main message loop
        while True:
            try:
                data = await socket.receive_json()
            except (json.JSONDecodeError, SerializationException):
                await board.hub.send_to(session_id, events.error("unknown", "invalid_message", "Invalid JSON"))
                continue

            if not isinstance(data, dict):
                await board.hub.send_to(
                    session_id, events.error("unknown", "invalid_message", "Expected a JSON object")
                )
                continue

            msg_type = data.get("type")

            try:
                if msg_type == "create-item":
                    await handle_create_item(board, data)

                elif msg_type == "toggle-like":
                    await handle_toggle_like(board, data)

                elif msg_type == "get-user-likes":
                    await handle_get_user_likes(board, session_id, data)

                elif msg_type == "trigger-aggregation":
                    started = board.scheduler.trigger()
                    logger.info(f"Aggregation triggered by session {session_id} (started={started})")

                elif msg_type == "ping":
                    await board.hub.send_to(session_id, {"type": events.PONG})

                else:
                    await board.hub.send_to(
                        session_id,
                        events.error(str(msg_type), "invalid_message", f"Unknown message type: {msg_type}"),
                    )

            except PydanticValidationError as e:
                await board.hub.send_to(
                    session_id,
                    events.error(msg_type, "invalid_message", f"Malformed {msg_type} message: {e.errors()[0]['msg']}"),
                )
            except RetroError as e:
                logger.info(f"Rejected {msg_type} from session {session_id}: {e.message}")
                await board.hub.send_to(session_id, events.error(msg_type, e.code, e.message))

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected (session {session_id})")

    except Exception as e:
        error_log("WebSocket error", exc=e, context={"session_id": session_id})

    finally:
        board.hub.unsubscribe(session_id)


# Export the websocket handler for use in routes
websocket_handler = board_websocket
