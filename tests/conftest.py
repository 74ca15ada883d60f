import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest

from stallbid.core.session import SessionContext, SessionStore
from stallbid.schemas.user import User
from stallbid.services.api_client import ApiClient
from stallbid.services.bid_service import BidService
from stallbid.services.fetcher import SnapshotFetcher
from stallbid.services.live_bidding import LiveBiddingSession
from stallbid.services.stall_service import StallService

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
STALL_ID = 7
BIDDER_ID = 42


def iso(dt: datetime) -> str:
    # backend sends naive ISO timestamps
    return dt.astimezone(timezone.utc).replace(tzinfo=None).isoformat()


def make_stall(**overrides) -> dict:
    stall = {
        "stallId": STALL_ID,
        "stallNo": 101,
        "stallName": "Premium Food Court Corner",
        "description": "Main entrance, high foot traffic",
        "location": "Block A - Ground Floor",
        "category": "Food",
        "image": None,
        "basePrice": 5000,
        "originalPrice": 6000,
        "currentHighestBid": 0,
        "totalBids": 0,
        "maxBidders": 20,
        "status": "ACTIVE",
        "biddingStart": iso(NOW - timedelta(hours=1)),
        "biddingEnd": iso(NOW + timedelta(hours=2)),
        "createdAt": "2025-02-01T09:00:00",
    }
    stall.update(overrides)
    return stall


def make_bid(bid_id: int, amount: int, minutes_ago: int = 0, **overrides) -> dict:
    bid = {
        "bidId": bid_id,
        "stallId": STALL_ID,
        "bidderId": 100 + bid_id,
        "bidderName": f"Bidder {bid_id}",
        "biddedPrice": amount,
        "bidTime": iso(NOW - timedelta(minutes=minutes_ago)),
        "status": "ACTIVE",
    }
    bid.update(overrides)
    return bid


class FakeBackend:
    """In-memory stand-in for the REST API, served through httpx.MockTransport"""

    def __init__(self):
        self.stall = make_stall()
        self.history = []
        self.requests = []
        self.fail_reads = False
        self.reject_message: Optional[str] = None
        self.reject_status = 400
        self.competing_amount: Optional[int] = None
        self.place_gate: Optional[asyncio.Event] = None
        self.transport = httpx.MockTransport(self.handler)

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path.endswith(suffix))

    @property
    def reads(self) -> int:
        return self.count("GET", f"/stalls/{STALL_ID}")

    @property
    def posts(self) -> int:
        return self.count("POST", "/bids/place")

    def accept(self, amount, bidder_id: int) -> dict:
        bid = make_bid(len(self.history) + 1, amount, bidderId=bidder_id, bidderName=None)
        self.history.insert(0, bid)
        self.stall = dict(self.stall, currentHighestBid=amount, totalBids=self.stall["totalBids"] + 1)
        return bid

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET":
            if self.fail_reads:
                raise httpx.ConnectError("backend unreachable", request=request)
            if path == f"/api/stalls/{STALL_ID}":
                return httpx.Response(200, json=self.stall)
            if path == f"/api/bids/stall/{STALL_ID}/history":
                return httpx.Response(200, json=self.history)

        if request.method == "POST" and path == "/api/bids/place":
            if self.place_gate is not None:
                await self.place_gate.wait()
            body = json.loads(request.content)
            if self.reject_message is not None:
                return httpx.Response(self.reject_status, json={"success": False, "message": self.reject_message})
            bid = self.accept(body["biddedPrice"], body["bidderId"])
            if self.competing_amount is not None:
                self.accept(self.competing_amount, 999)
            return httpx.Response(200, json={"success": True, "message": "Bid placed", "bid": bid})

        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def bidder() -> User:
    return User(student_id=BIDDER_ID, student_name="Asha", student_email="asha@campus.edu", role="BIDDER")


@pytest.fixture
def session(tmp_path, bidder) -> SessionContext:
    """Signed-in session kept in memory; nothing is written unless a test saves"""
    ctx = SessionContext(SessionStore(str(tmp_path / "sessions.db")))
    ctx.token = "test-token"
    ctx.user = bidder
    return ctx


@pytest.fixture
async def api(backend, session):
    async with ApiClient(base_url="http://test/api", session=session, transport=backend.transport) as client:
        yield client


@pytest.fixture
def bid_service(api) -> BidService:
    return BidService(api)


@pytest.fixture
def fetcher(api, bid_service) -> SnapshotFetcher:
    return SnapshotFetcher(StallService(api), bid_service)


@pytest.fixture
def clock():
    class Clock:
        def __init__(self):
            self.now = NOW

        def __call__(self):
            return self.now

        def advance(self, **kwargs):
            self.now = self.now + timedelta(**kwargs)
    return Clock()


@pytest.fixture
async def live(fetcher, bid_service, session, clock):
    view = LiveBiddingSession(STALL_ID, fetcher, bid_service, session, poll_interval=0, clock=clock)
    yield view
    await view.stop()
