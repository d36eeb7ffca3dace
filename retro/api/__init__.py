"""Retro board API routes."""

from retro.api.items import ItemsController, UsersController
from retro.api.aggregate import AggregateController
from retro.api.websocket import websocket_handler

__all__ = ["ItemsController", "UsersController", "AggregateController", "websocket_handler"]
