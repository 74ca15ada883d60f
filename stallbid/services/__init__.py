from .api_client import ApiClient, describe_http_error
from .stall_service import StallService
from .bid_service import BidService, normalize_bid_record, normalize_bid_records
from .auth_service import AuthService
from .countdown import compute_countdown, format_duration
from .reconciler import reconcile, initial_state, minimum_next_bid, detect_new_bids
from .fetcher import SnapshotFetcher, AuctionPoller
from .submission import BidSubmissionController
from .live_bidding import LiveBiddingSession
from .bid_channel import BidUpdateChannel, encode_frame, parse_frame
