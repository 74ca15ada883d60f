from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from stallbid.core.config import settings
from stallbid.enums import BiddingPhase, StallStatus
from stallbid.schemas.bid import BidRecord
from stallbid.schemas.common import ensure_utc
from stallbid.schemas.stall import StallSnapshot
from stallbid.schemas.view_state import ViewState
from stallbid.services.countdown import compute_countdown

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def initial_state(stall_id: int) -> ViewState:
    return ViewState(stall_id=stall_id)


def minimum_next_bid(snapshot: StallSnapshot, increment: Optional[Decimal] = None) -> Decimal:
    step = settings.bid_increment if increment is None else Decimal(increment)
    return snapshot.leading_price + step


def _sort_key(bid: BidRecord):
    if bid.bid_time is None:
        return (False, _EPOCH, Decimal("0"))
    return (True, bid.bid_time, bid.amount)


def _newest_first(history: Iterable[BidRecord]) -> List[BidRecord]:
    # stable sort: records without a timestamp keep their server order, after timed ones
    return sorted(history, key=_sort_key, reverse=True)


def _bid_key(bid: BidRecord):
    if bid.bid_id is not None:
        return ("id", bid.bid_id)
    return ("value", bid.bidder_id, bid.amount, bid.bid_time)


def detect_new_bids(previous: Sequence[BidRecord], current: Sequence[BidRecord]) -> List[BidRecord]:
    """Bids in `current` that were not shown in `previous`"""
    seen = {_bid_key(bid) for bid in previous}
    return [bid for bid in current if _bid_key(bid) not in seen]


def reconcile(
    previous: ViewState,
    snapshot: StallSnapshot,
    history: Sequence[BidRecord],
    now: datetime,
    *,
    increment: Optional[Decimal] = None,
    history_limit: Optional[int] = None,
) -> ViewState:
    """
    Merge a freshly fetched snapshot and bid history into the view state.

    The fetched history replaces the old one wholesale. The minimum next bid
    always follows the snapshot, while the user's typed amount is only ever
    raised to meet it. ENDED is terminal. Same inputs give the same state.
    """
    if snapshot.stall_id != previous.stall_id:
        raise ValueError(f"Snapshot for stall {snapshot.stall_id} cannot update view of stall {previous.stall_id}")

    now = ensure_utc(now)
    limit = settings.history_limit if history_limit is None else history_limit

    countdown = compute_countdown(
        snapshot.status, snapshot.bidding_start, snapshot.bidding_end, now,
        invalid_start="bidding_start" in snapshot.malformed_dates,
        invalid_end="bidding_end" in snapshot.malformed_dates,
    )
    is_ended = previous.is_auction_ended or countdown.has_ended
    # an unrecognised status is treated as not yet open for bidding
    is_not_started = not is_ended and (
        snapshot.status in (StallStatus.available, StallStatus.unknown)
        or (snapshot.bidding_start is not None and now < snapshot.bidding_start)
    )

    min_bid = minimum_next_bid(snapshot, increment)
    bid_amount = max(previous.bid_amount, min_bid)

    if is_ended:
        phase = BiddingPhase.ended
    elif is_not_started:
        phase = BiddingPhase.not_started
    elif previous.phase == BiddingPhase.submitting:
        phase = BiddingPhase.submitting
    else:
        phase = BiddingPhase.ready

    return previous.model_copy(update={
        "phase": phase,
        "snapshot": snapshot,
        "bid_history": tuple(_newest_first(history)[:max(limit, 0)]),
        "min_bid_amount": min_bid,
        "bid_amount": bid_amount,
        "countdown": countdown,
        "is_auction_ended": is_ended,
        "is_auction_not_started": is_not_started,
    })
