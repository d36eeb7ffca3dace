from retro.api import AggregateController, ItemsController, UsersController, websocket_handler

ROUTES = [
    ItemsController,
    UsersController,
    AggregateController,
    websocket_handler,
]
