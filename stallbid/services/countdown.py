from datetime import datetime, timedelta
from typing import Optional

from stallbid.enums import StallStatus
from stallbid.schemas.common import ensure_utc
from stallbid.schemas.view_state import Countdown

URGENT_BELOW = timedelta(hours=1)

NOT_SCHEDULED = "Not Scheduled"
NO_END_TIME = "No End Time"
INVALID_DATE = "Invalid Date"
STARTING_SOON = "Starting soon..."
ENDED = "Ended"
CLOSED = "Closed"
BOOKED = "Booked"
TBD = "TBD"


def format_duration(remaining: timedelta) -> str:
    """
    Most significant non-zero pair of units: "2d 3h", "3h 5m", "5m 9s" or "9s".
    Negative durations are clamped to "0s".
    """
    seconds = max(int(remaining.total_seconds()), 0)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def compute_countdown(
    status: StallStatus,
    bidding_start: Optional[datetime],
    bidding_end: Optional[datetime],
    now: datetime,
    *,
    invalid_start: bool = False,
    invalid_end: bool = False,
) -> Countdown:
    """
    Time left for a stall. AVAILABLE stalls count down to their start,
    ACTIVE ones to their end. Unset or unparseable deadlines give a pending
    label instead of a duration.
    """
    now = ensure_utc(now)

    if status == StallStatus.available:
        if invalid_start:
            return Countdown(display=INVALID_DATE, label="Schedule", is_pending=True)
        if bidding_start is None:
            return Countdown(display=NOT_SCHEDULED, label="Schedule", is_pending=True)
        left = ensure_utc(bidding_start) - now
        if left > timedelta(0):
            return Countdown(display=format_duration(left), label="Starts in", is_urgent=left < URGENT_BELOW)
        return Countdown(display=STARTING_SOON, label="Starts in")

    if status == StallStatus.active:
        if invalid_end:
            return Countdown(display=INVALID_DATE, label="Schedule", is_pending=True)
        if bidding_end is None:
            return Countdown(display=NO_END_TIME, label="Schedule", is_pending=True)
        left = ensure_utc(bidding_end) - now
        if left > timedelta(0):
            urgent = left < URGENT_BELOW
            return Countdown(
                display=format_duration(left),
                label="⚠️ Ends in" if urgent else "Ends in",
                is_urgent=urgent,
            )
        return Countdown(display=ENDED, label="Auction", has_ended=True)

    if status == StallStatus.closed:
        return Countdown(display=CLOSED, label="Auction", has_ended=True)

    # BOOKED means the stall already has its winner
    if status == StallStatus.booked:
        return Countdown(display=BOOKED, label="Auction", has_ended=True)

    return Countdown(display=TBD, label="Status", is_pending=True)
