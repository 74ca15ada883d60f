from enum import Enum

class BiddingPhase(str, Enum):
    """States of the live bidding view"""
    loading = "LOADING"
    ready = "READY"
    submitting = "SUBMITTING"
    not_started = "NOT_STARTED"
    ended = "ENDED"
