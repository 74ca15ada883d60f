from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable, Optional

from loguru import logger

from stallbid.core.config import settings
from stallbid.core.exceptions import (
    AuctionClosedError,
    BidRejectedError,
    BidValidationError,
    SubmissionInProgressError,
)
from stallbid.enums import BiddingPhase
from stallbid.schemas.bid import BidRecord, BidRequest
from stallbid.schemas.view_state import ViewState
from stallbid.services.bid_service import BidService


class BidSubmissionController:
    """
    Sends one bid at a time for a live view.

    The local checks only save a round trip; the backend still decides.
    Whatever the backend answers, the view is resynchronised from a fresh
    fetch instead of trusting the submitted amount.
    """
    def __init__(
        self,
        bid_service: BidService,
        state_provider: Callable[[], ViewState],
        resync: Callable[[], Awaitable[object]],
        *,
        currency_symbol: Optional[str] = None,
        on_start: Optional[Callable[[], None]] = None,
        on_finish: Optional[Callable[[], None]] = None,
    ):
        self.bid_service = bid_service
        self.state_provider = state_provider
        self.resync = resync
        self.currency_symbol = settings.currency_symbol if currency_symbol is None else currency_symbol
        self.on_start = on_start
        self.on_finish = on_finish
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def validate(self, state: ViewState, amount: Decimal) -> None:
        if state.snapshot is None or state.phase == BiddingPhase.loading:
            raise BidValidationError("Auction details are still loading")
        if state.is_auction_ended:
            raise AuctionClosedError("This auction has ended")
        if state.is_auction_not_started:
            raise BidValidationError("Bidding has not started yet")
        if not state.accepts_bids:
            raise BidValidationError("Bidding is not open right now")
        if amount < state.min_bid_amount:
            raise BidValidationError(f"Minimum bid amount is {self.currency_symbol}{state.min_bid_amount}")

    async def submit(self, candidate_amount, stall_id: int, bidder_id: int) -> Optional[BidRecord]:
        """
        Returns the bid echoed by the backend, or None when it echoed nothing.

        Raises SubmissionInProgressError or BidValidationError before any
        request is made, BidRejectedError when the backend refuses.
        """
        if self._in_flight:
            raise SubmissionInProgressError()

        try:
            amount = Decimal(str(candidate_amount))
        except InvalidOperation:
            raise BidValidationError(f"'{candidate_amount}' is not a valid amount")
        if not amount.is_finite():
            raise BidValidationError(f"'{candidate_amount}' is not a valid amount")
        self.validate(self.state_provider(), amount)

        self._in_flight = True
        if self.on_start:
            self.on_start()
        try:
            request = BidRequest(stall_id=stall_id, bidder_id=bidder_id, bidded_price=amount)
            try:
                response = await self.bid_service.place_bid(request)
            except BidRejectedError as e:
                logger.info(f"Bid of {amount} on stall {stall_id} rejected: {e.message}")
                await self.resync()
                raise

            logger.info(f"Bid of {amount} on stall {stall_id} accepted")
            await self.resync()
            return response.bid
        finally:
            self._in_flight = False
            if self.on_finish:
                self.on_finish()
