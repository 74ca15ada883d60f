import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from stallbid.core.config import settings
from stallbid.core.exceptions import BidValidationError, StallBidError
from stallbid.core.session import SessionContext
from stallbid.enums import BiddingPhase
from stallbid.schemas.bid import BidRecord
from stallbid.schemas.view_state import ViewState
from stallbid.services.bid_service import BidService
from stallbid.services.fetcher import AuctionPoller, SnapshotFetcher
from stallbid.services.reconciler import detect_new_bids, initial_state, reconcile
from stallbid.services.submission import BidSubmissionController

Listener = Callable[[ViewState, List[BidRecord]], None]

BID_SUCCESS_MESSAGE = "Bid placed successfully!"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LiveBiddingSession:
    """
    Live view of one stall's auction.

    LOADING -> READY | NOT_STARTED | ENDED after the first fetch, then the
    poller keeps refreshing until the auction ends or stop() is called.
    Only this object replaces `state`; listeners get the new state and the
    bids that appeared since the previous one.
    """
    def __init__(
        self,
        stall_id: int,
        fetcher: SnapshotFetcher,
        bid_service: BidService,
        session: SessionContext,
        *,
        poll_interval: Optional[float] = None,
        increment: Optional[Decimal] = None,
        history_limit: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.stall_id = stall_id
        self.fetcher = fetcher
        self.session = session
        self.increment = increment
        self.history_limit = history_limit
        self.clock = clock

        self.state: ViewState = initial_state(stall_id)
        self.last_error: Optional[str] = None
        self.bid_error: str = ""
        self.bid_success: str = ""
        self._listeners: List[Listener] = []
        self._closed = False

        self.submitter = BidSubmissionController(
            bid_service,
            state_provider=lambda: self.state,
            resync=self.refresh,
            on_start=self._enter_submitting,
            on_finish=self._leave_submitting,
        )
        self.poller = AuctionPoller(
            self.refresh,
            settings.poll_interval if poll_interval is None else poll_interval,
            should_continue=lambda: not self._closed and not self.state.is_auction_ended,
            sleep=sleep,
            name=f"stall_{stall_id}_poller",
        )

    # -----------------------
    # lifecycle
    # -----------------------
    async def start(self) -> ViewState:
        await self.refresh()
        if not self.state.is_auction_ended and not self._closed:
            self.poller.start()
        return self.state

    async def stop(self) -> None:
        """Tear down the view. A bid still in flight finishes but its result is dropped."""
        self._closed = True
        await self.poller.stop()
        self._listeners.clear()

    @property
    def is_polling(self) -> bool:
        return self.poller.is_running

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    # -----------------------
    # state updates
    # -----------------------
    async def refresh(self) -> bool:
        """
        Fetch and reconcile once. On failure the current state is kept and
        False is returned.
        """
        try:
            snapshot, history = await self.fetcher.fetch_all(self.stall_id)
        except StallBidError as e:
            self.last_error = e.message
            logger.warning(f"Refresh of stall {self.stall_id} failed, keeping last state: {e.message}")
            return False

        if self._closed:
            return False

        try:
            new_state = reconcile(
                self.state, snapshot, history, self.clock(),
                increment=self.increment, history_limit=self.history_limit,
            )
        except ValueError as e:
            self.last_error = str(e)
            logger.warning(f"Discarding snapshot for stall {self.stall_id}: {e}")
            return False

        self.last_error = None
        self._apply(new_state)
        return True

    async def on_push(self, _bid: Optional[BidRecord] = None) -> bool:
        """A pushed bid only triggers a fetch; the backend stays the source of truth."""
        if self._closed or self.state.is_auction_ended:
            return False
        return await self.refresh()

    def _apply(self, new_state: ViewState) -> None:
        previous = self.state
        self.state = new_state

        new_bids = detect_new_bids(previous.bid_history, new_state.bid_history) if previous.snapshot else []
        if new_state.is_auction_ended and not previous.is_auction_ended:
            logger.info(f"Auction for stall {self.stall_id} has ended")
        elif previous.is_auction_not_started and not new_state.is_auction_not_started:
            logger.info(f"Auction for stall {self.stall_id} is now open")

        if new_state != previous or new_bids:
            for listener in list(self._listeners):
                try:
                    listener(new_state, new_bids)
                except Exception as e:
                    logger.exception(f"State listener failed: {e}")

    def _enter_submitting(self) -> None:
        self._apply(self.state.with_phase(BiddingPhase.submitting))

    def _leave_submitting(self) -> None:
        if self._closed:
            return
        if self.state.phase == BiddingPhase.submitting:
            self._apply(self.state.with_phase(BiddingPhase.ready))

    # -----------------------
    # user input
    # -----------------------
    def set_bid_amount(self, amount) -> None:
        self._apply(self.state.with_bid_amount(Decimal(str(amount))))

    def increment_bid(self, step) -> None:
        self.set_bid_amount(self.state.bid_amount + Decimal(str(step)))

    async def place_bid(self, amount=None) -> Optional[BidRecord]:
        user = self.session.user
        if user is None or not self.session.is_logged_in:
            raise BidValidationError("Please login to place a bid")
        if not user.is_bidder:
            raise BidValidationError("Only approved bidders can place bids")

        candidate = self.state.bid_amount if amount is None else amount
        self.bid_error, self.bid_success = "", ""
        try:
            bid = await self.submitter.submit(candidate, self.stall_id, user.student_id)
        except StallBidError as e:
            self.bid_error = e.message
            raise
        self.bid_success = BID_SUCCESS_MESSAGE
        return bid
