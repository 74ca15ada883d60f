from decimal import Decimal

import httpx
import pytest
from pydantic import ValidationError

from stallbid.core.exceptions import MalformedResponseError
from stallbid.enums import StallStatus
from stallbid.schemas.stall import StallSnapshot
from stallbid.services.api_client import ApiClient
from stallbid.services.stall_service import StallService

from tests.conftest import STALL_ID, make_stall


def test_snapshot_parses_backend_payload():
    stall = StallSnapshot.model_validate(make_stall(currentHighestBid=8500, totalBids=15))

    assert stall.stall_id == STALL_ID
    assert stall.stall_name == "Premium Food Court Corner"
    assert stall.status == StallStatus.active
    assert stall.current_highest_bid == Decimal("8500")
    assert stall.leading_price == Decimal("8500")
    assert stall.bidding_end.tzinfo is not None


def test_snapshot_tolerates_unset_fields():
    stall = StallSnapshot.model_validate(make_stall(
        status="available", biddingStart="null", biddingEnd="", currentHighestBid=None, totalBids=None,
    ))

    assert stall.status == StallStatus.available
    assert stall.bidding_start is None
    assert stall.bidding_end is None
    assert stall.total_bids == 0
    assert not stall.has_bids
    assert stall.leading_price == Decimal("5000")


def test_snapshot_accepts_alternate_schedule_names():
    payload = make_stall()
    payload["biddingStartTime"] = payload.pop("biddingStart")
    payload["biddingEndTime"] = payload.pop("biddingEnd")

    stall = StallSnapshot.model_validate(payload)

    assert stall.bidding_start is not None
    assert stall.bidding_end is not None


def test_snapshot_is_read_only():
    stall = StallSnapshot.model_validate(make_stall())

    with pytest.raises(ValidationError):
        stall.current_highest_bid = Decimal("1")


@pytest.mark.asyncio
async def test_stall_listing_endpoints():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path.endswith("/counts"):
            return httpx.Response(200, json={"ACTIVE": 2, "CLOSED": "1"})
        return httpx.Response(200, json=[make_stall(), make_stall(stallId=8, status="CLOSED")])

    async with ApiClient(base_url="http://test/api", transport=httpx.MockTransport(handler)) as api:
        service = StallService(api)
        active = await service.get_active_auctions()
        closed = await service.get_stalls_by_status(StallStatus.closed)
        counts = await service.get_stall_counts()

    assert [s.stall_id for s in active] == [STALL_ID, 8]
    assert len(closed) == 2
    assert counts == {"ACTIVE": 2, "CLOSED": 1}
    assert paths == ["/api/stalls/active", "/api/stalls/status/CLOSED", "/api/stalls/counts"]


def test_unknown_status_is_kept_as_unknown():
    stall = StallSnapshot.model_validate(make_stall(status="pending_approval"))

    assert stall.status == StallStatus.unknown


def test_unparseable_dates_are_dropped_and_remembered():
    stall = StallSnapshot.model_validate(make_stall(biddingEnd="not-a-date", createdAt="31/02/2025"))

    assert stall.bidding_end is None
    assert stall.created_at is None
    assert stall.bidding_start is not None
    assert stall.malformed_dates == ("bidding_end", "created_at")


@pytest.mark.asyncio
async def test_unrepairable_stall_payload_raises_malformed_response():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/stalls/active"):
            return httpx.Response(200, json={"unexpected": "object"})
        return httpx.Response(200, json={"stallName": "No id"})

    async with ApiClient(base_url="http://test/api", transport=httpx.MockTransport(handler)) as api:
        service = StallService(api)
        with pytest.raises(MalformedResponseError, match="Malformed stall data"):
            await service.get_stall_by_id(STALL_ID)
        with pytest.raises(MalformedResponseError):
            await service.get_active_auctions()
