"""The board: one container for the components every handler talks to."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from litestar.datastructures import State
from sqlalchemy.ext.asyncio import AsyncSession

from retro.realtime import BroadcastHub
from retro.services.aggregation import AggregationScheduler
from retro.services.analyst import RetroAnalyst
from retro.services.items import ItemStore
from retro.services.likes import LikeLedger


@dataclass
class Board:
    """Item store, like ledger, hub and scheduler of the single board."""
    store: ItemStore
    ledger: LikeLedger
    hub: BroadcastHub
    scheduler: AggregationScheduler
    analyst: RetroAnalyst
    session_maker: Callable[[], AsyncSession]


def build_board(
    session_maker: Callable[[], AsyncSession],
    analyst: RetroAnalyst,
    interval_seconds: float = 1800,
    timeout_seconds: float = 120,
    startup_delay_seconds: Optional[float] = None,
) -> Board:
    # Store and ledger share one write sequencer
    write_lock = asyncio.Lock()
    store = ItemStore(write_lock)
    ledger = LikeLedger(write_lock)
    hub = BroadcastHub()
    scheduler = AggregationScheduler(
        session_maker=session_maker,
        store=store,
        analyst=analyst,
        hub=hub,
        interval_seconds=interval_seconds,
        timeout_seconds=timeout_seconds,
        startup_delay_seconds=startup_delay_seconds,
    )
    return Board(
        store=store,
        ledger=ledger,
        hub=hub,
        scheduler=scheduler,
        analyst=analyst,
        session_maker=session_maker,
    )


def provide_board(state: State) -> Board:
    """Dependency provider: the board stored on the application state."""
    return state.board
