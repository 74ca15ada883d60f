import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from loguru import logger

from stallbid.schemas.bid import BidRecord
from stallbid.schemas.stall import StallSnapshot
from stallbid.services.bid_service import BidService
from stallbid.services.stall_service import StallService


class SnapshotFetcher:
    """Reads the two endpoints a live view needs. No caching, no retries."""

    def __init__(self, stall_service: StallService, bid_service: BidService):
        self.stall_service = stall_service
        self.bid_service = bid_service

    async def fetch(self, stall_id: int) -> StallSnapshot:
        return await self.stall_service.get_stall_by_id(stall_id)

    async def fetch_history(self, stall_id: int) -> List[BidRecord]:
        return await self.bid_service.get_bid_history(stall_id)

    async def fetch_all(self, stall_id: int) -> Tuple[StallSnapshot, List[BidRecord]]:
        snapshot, history = await asyncio.gather(self.fetch(stall_id), self.fetch_history(stall_id))
        return snapshot, history


class AuctionPoller:
    """
    Calls `tick` every `interval` seconds in a background task.

    The loop ends on stop() or as soon as `should_continue()` turns False,
    checked both before and after each tick.
    """
    def __init__(
        self,
        tick: Callable[[], Awaitable[object]],
        interval: float,
        should_continue: Callable[[], bool] = lambda: True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "auction_poller",
    ):
        self.tick = tick
        self.interval = interval
        self.should_continue = should_continue
        self._sleep = sleep
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._running = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Idempotent"""
        if self.is_running:
            return
        self._running.set()
        self._task = asyncio.create_task(self._loop(), name=self._name)

    async def stop(self) -> None:
        """Idempotent"""
        self._running.clear()
        if self._task:
            if not self._task.done():
                self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self):
        try:
            while self._running.is_set():
                await self._sleep(self.interval)
                if not self._running.is_set() or not self.should_continue():
                    break
                try:
                    await self.tick()
                except Exception as e:
                    logger.exception(f"Poll tick failed: {e}")
                if not self.should_continue():
                    break
        except asyncio.CancelledError:
            pass
        finally:
            self._running.clear()
            logger.debug(f"{self._name} stopped")
