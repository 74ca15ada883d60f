from typing import Any, Optional


class StallBidError(Exception):
    """Base class for every error raised by the client"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(StallBidError):
    """The request never produced an HTTP response (DNS, refused, timeout)"""


class ApiError(StallBidError):
    """The backend answered with a non-success status"""

    def __init__(self, status_code: int, message: str, payload: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def server_message(self) -> Optional[str]:
        """The backend's own `message` field, if it sent one"""
        if isinstance(self.payload, dict):
            msg = self.payload.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg
        return None

    def __str__(self) -> str:
        return f"[{self.status_code}] {self.message}"


class NotAuthenticatedError(ApiError):
    pass


class BidRejectedError(ApiError):
    """A well-formed bid the backend refused (stale minimum, closed auction...)"""


class BidValidationError(StallBidError):
    """Bid failed the local pre-check and was never sent"""


class AuctionClosedError(BidValidationError):
    pass


class SubmissionInProgressError(StallBidError):
    """A bid for this view is already in flight"""

    def __init__(self, message: str = "A bid is already being submitted"):
        super().__init__(message)


class MalformedResponseError(StallBidError):
    """The backend answered 2xx but the body is not the expected shape"""
