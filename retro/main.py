import logging
from typing import Optional

from litestar import Litestar, Request
from litestar.config.cors import CORSConfig
from litestar.contrib.sqlalchemy.plugins import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyInitPlugin,
)
from litestar.datastructures import State
from litestar.di import Provide
from litestar.response import Response
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR

from retro.board import build_board, provide_board
from retro.config import Settings, load_env_file_fallback, load_settings
from retro.errors import RetroError
from retro.models import Base  # Import models Base for table creation
from retro.routes import ROUTES
from retro.services.analyst import build_analyst
from retro.utils.logging import configure_logging, log_exception_with_context, request_context

logger = logging.getLogger("Retro")


# --- Exception handlers
def handle_retro_error(request: Request, exc: RetroError) -> Response:
    """Application errors go back to the caller only, with their code."""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    return Response(
        content=exc.to_dict(),
        status_code=exc.status_code,
        media_type="application/json",
    )


def log_exceptions(request: Request, exc: Exception) -> Response:
    log_exception_with_context(exc, context=request_context(request), message="Unhandled exception occurred")
    return Response(
        content={"code": "internal_error", "detail": "Internal Server Error"},
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/json",
    )


def create_app(settings: Optional[Settings] = None) -> Litestar:
    """Build the Litestar application and its board."""
    if settings is None:
        load_env_file_fallback()
        settings = load_settings()

    configure_logging(settings.debug)
    logger.info(f"Starting app in {'DEBUG' if settings.debug else 'PRODUCTION'} mode")
    logger.info(f"Database URL: {settings.database_url}")

    # --- SQLAlchemy config
    db_config = SQLAlchemyAsyncConfig(
        connection_string=settings.database_url,
        session_dependency_key="session",
        metadata=Base.metadata,  # Use our models' metadata
        create_all=settings.create_all,
        session_config=AsyncSessionConfig(expire_on_commit=False),
    )

    analyst = build_analyst(settings)
    board = build_board(
        session_maker=db_config.create_session_maker(),
        analyst=analyst,
        interval_seconds=settings.ai_interval_seconds,
        timeout_seconds=settings.ai_timeout_seconds,
        startup_delay_seconds=settings.startup_delay,
    )

    async def start_scheduler() -> None:
        if settings.scheduler_enabled:
            board.scheduler.start()
        else:
            logger.info("AI scheduler disabled, aggregation runs only on manual trigger")

    async def stop_board() -> None:
        await board.scheduler.stop()
        await board.analyst.aclose()

    return Litestar(
        route_handlers=ROUTES,
        debug=settings.debug,
        plugins=[SQLAlchemyInitPlugin(db_config)],
        cors_config=CORSConfig(allow_origins=settings.cors_origins),
        dependencies={"board": Provide(provide_board, sync_to_thread=False)},
        state=State({"board": board, "settings": settings}),
        on_startup=[start_scheduler],
        on_shutdown=[stop_board],
        exception_handlers={
            RetroError: handle_retro_error,
            HTTP_500_INTERNAL_SERVER_ERROR: log_exceptions,
        },
    )


# --- App init
app = create_app()
