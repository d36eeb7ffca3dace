"""AI aggregate endpoints."""

import base64
import binascii
import logging

from litestar import Controller, Response, get, post
from litestar.status_codes import HTTP_202_ACCEPTED

from retro.board import Board
from retro.errors import NotFoundError
from retro.schemas import AggregateResult, TriggerResponse

logger = logging.getLogger("Retro.aggregate")


class AggregateController(Controller):
    """Read the latest AI summary and request a fresh one."""

    path = "/api/aggregate"
    tags = ["aggregate"]

    @get("/")
    async def get_aggregate(self, board: Board) -> AggregateResult:
        result = board.scheduler.current
        if result is None:
            raise NotFoundError("No aggregate has been generated yet")
        return result

    @get("/image")
    async def get_vibe_image(self, board: Board) -> Response[bytes]:
        """The latest vibe image as raw bytes."""
        result = board.scheduler.current
        if result is None or result.vibe_image is None:
            raise NotFoundError("No vibe image available")
        try:
            content = base64.b64decode(result.vibe_image.data, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Stored vibe image is not valid base64: {e}")
            raise NotFoundError("No vibe image available") from e
        return Response(content=content, media_type=result.vibe_image.mime_type)

    @post("/trigger", status_code=HTTP_202_ACCEPTED)
    async def trigger(self, board: Board) -> TriggerResponse:
        """Start a run now, or queue one follow-up if a run is in flight."""
        started = board.scheduler.trigger()
        logger.info(f"Aggregation triggered over HTTP (started={started})")
        return TriggerResponse(started=started)
