from .stall import StallSnapshot, StallWinner
from .bid import BidRecord, BidRequest, BidResponse, HighestBid, ANONYMOUS_BIDDER
from .user import User, LoginRequest, AuthResponse
from .view_state import Countdown, ViewState
