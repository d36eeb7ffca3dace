"""Aggregation scheduler: periodic AI summary of the whole board.

Owns the single ``AggregateResult`` slot. A run snapshots the ranked feed,
asks the analyst for a summary and then (sequentially) for an image, and on
success replaces the slot and broadcasts it. Failures leave the slot alone.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from retro.errors import CollaboratorError, CollaboratorTimeout, RetroError
from retro.realtime import BroadcastHub
from retro.realtime.events import aggregate_updated
from retro.schemas import AggregateResult, ItemResponse, RetroAnalysis, Sentiment, VibeImage
from retro.services.analyst import RetroAnalyst
from retro.services.items import ItemStore
from retro.utils.logging import error_log

logger = logging.getLogger("Retro.aggregation")


def placeholder_result() -> AggregateResult:
    """Result published for an empty board, without calling the analyst."""
    return AggregateResult(
        summary_text="",
        sentiment=Sentiment(overall="neutral", positive_ratio=0.5, key_emotions=[]),
        vibe_image=None,
        generated_at=datetime.now(timezone.utc),
        item_count=0,
    )


class AggregationScheduler:
    """
    Runs the aggregation on an interval or on demand, one run at a time.

    - A scheduled tick that finds a run in flight is dropped; the next tick
      picks up whatever changed.
    - A manual trigger that finds a run in flight is coalesced into a single
      follow-up run, however many triggers arrive meanwhile.

    All state lives on the event loop thread, so the in-flight flag is
    checked and set without awaiting in between.
    """

    def __init__(
        self,
        session_maker: Callable[[], AsyncSession],
        store: ItemStore,
        analyst: RetroAnalyst,
        hub: BroadcastHub,
        interval_seconds: float = 1800,
        timeout_seconds: float = 120,
        startup_delay_seconds: Optional[float] = 5,
    ):
        self._session_maker = session_maker
        self._store = store
        self._analyst = analyst
        self._hub = hub
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.startup_delay_seconds = startup_delay_seconds

        self._result: Optional[AggregateResult] = None
        self._running = False
        self._rerun_pending = False
        self._loop_task: Optional[asyncio.Task] = None
        self._triggered: Set[asyncio.Task] = set()

    # --- Read contract ---

    @property
    def current(self) -> Optional[AggregateResult]:
        """Latest published result, or None before the first successful run."""
        return self._result

    @property
    def is_running(self) -> bool:
        return self._running

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the periodic loop on the running event loop."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._periodic(), name="retro-aggregation")
            logger.info(f"AI generation scheduled every {self.interval_seconds:g}s")

    async def stop(self) -> None:
        tasks = list(self._triggered)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._triggered.clear()

    async def _periodic(self) -> None:
        if self.startup_delay_seconds is not None:
            await asyncio.sleep(self.startup_delay_seconds)
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()

    # --- Triggers ---

    async def run_once(self) -> bool:
        """Run now unless a run is in flight (then drop). Returns whether it ran."""
        if self._running:
            logger.info("Aggregation already in progress, skipping scheduled run")
            return False
        self._running = True
        await self._drain()
        return True

    def trigger(self) -> bool:
        """
        Manual trigger. Starts a background run, or marks one follow-up run
        if a run is in flight. Returns True if a new run was started.
        """
        if self._running:
            self._rerun_pending = True
            logger.info("Aggregation in progress, follow-up run queued")
            return False
        self._running = True
        task = asyncio.create_task(self._drain(), name="retro-aggregation-manual")
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)
        return True

    async def _drain(self) -> None:
        try:
            while True:
                self._rerun_pending = False
                try:
                    await self._execute()
                except Exception as e:
                    error_log("Aggregation run crashed, keeping previous result", exc=e)
                if not self._rerun_pending:
                    break
                logger.info("Running queued follow-up aggregation")
        finally:
            self._running = False

    # --- The run itself ---

    async def _snapshot(self) -> List[ItemResponse]:
        async with self._session_maker() as session:
            items = await self._store.list_items(session)
            return [ItemResponse.model_validate(i) for i in items]

    async def _call(self, coro, step: str):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise CollaboratorTimeout(f"{step} timed out after {self.timeout_seconds:g}s") from e

    async def _execute(self) -> Optional[AggregateResult]:
        logger.info("Starting AI generation...")
        try:
            snapshot = await self._snapshot()
        except RetroError as e:
            error_log("Could not snapshot items for aggregation", exc=e)
            return None

        if not snapshot:
            result = placeholder_result()
            await self._publish(result)
            logger.info("Board is empty, published placeholder result")
            return result

        try:
            analysis: RetroAnalysis = await self._call(self._analyst.summarize(snapshot), "summarize")
        except CollaboratorError as e:
            error_log("AI summary failed, keeping previous result", exc=e, context={"items": len(snapshot)})
            return None
        except Exception as e:
            error_log("Unexpected error from AI summary, keeping previous result", exc=e)
            return None
        logger.info("Summary generated.")

        vibe_image: Optional[VibeImage] = None
        if analysis.image_prompt:
            try:
                vibe_image = await self._call(self._analyst.render_image(analysis.image_prompt), "render_image")
            except Exception as e:
                error_log("Vibe image generation failed, publishing without image", exc=e)
        else:
            logger.info("No image prompt generated, skipping image generation")
        logger.info(f"Vibe image generated: {'success' if vibe_image else 'skipped/failed'}")

        result = AggregateResult(
            summary_text=analysis.summary,
            sentiment=analysis.sentiment,
            vibe_image=vibe_image,
            generated_at=datetime.now(timezone.utc),
            item_count=len(snapshot),
        )
        await self._publish(result)
        return result

    async def _publish(self, result: AggregateResult) -> None:
        self._result = result
        delivered = await self._hub.publish(aggregate_updated(result))
        logger.info(f"Broadcasted AI update to {delivered} client(s).")
