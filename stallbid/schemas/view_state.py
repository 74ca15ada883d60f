from decimal import Decimal
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from stallbid.enums import BiddingPhase
from stallbid.schemas.bid import BidRecord
from stallbid.schemas.stall import StallSnapshot


class Countdown(BaseModel):
    """Human readable time left for a stall plus the flags derived from it"""
    display: str
    label: str
    is_urgent: bool = False
    has_ended: bool = False
    is_pending: bool = False

    model_config = ConfigDict(frozen=True)


class ViewState(BaseModel):
    """
    Everything the live bidding view shows for one stall.

    Owned by a single LiveBiddingSession and only ever replaced, never mutated.
    """
    stall_id: int
    phase: BiddingPhase = BiddingPhase.loading
    snapshot: Optional[StallSnapshot] = None
    bid_history: Tuple[BidRecord, ...] = ()
    min_bid_amount: Decimal = Decimal("0")
    bid_amount: Decimal = Decimal("0")
    countdown: Optional[Countdown] = None
    is_auction_ended: bool = False
    is_auction_not_started: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def current_highest_bid(self) -> Optional[Decimal]:
        return self.snapshot.current_highest_bid if self.snapshot else None

    @property
    def accepts_bids(self) -> bool:
        return self.phase == BiddingPhase.ready

    def with_phase(self, phase: BiddingPhase) -> "ViewState":
        return self.model_copy(update={"phase": phase})

    def with_bid_amount(self, amount: Decimal) -> "ViewState":
        return self.model_copy(update={"bid_amount": Decimal(amount)})
