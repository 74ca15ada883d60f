from .bid_status import BidStatus
from .stall_status import StallStatus
from .user_role import UserRole, AuthProvider
from .bidding_phase import BiddingPhase
