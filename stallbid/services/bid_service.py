from typing import Any, List, Optional

from loguru import logger
from pydantic import ValidationError

from stallbid.core.exceptions import ApiError, BidRejectedError, NotAuthenticatedError
from stallbid.schemas.bid import BidRecord, BidRequest, BidResponse, HighestBid
from stallbid.schemas.common import validation_reason
from stallbid.services.api_client import ApiClient

FAILED_BID_MESSAGE = "Failed to place bid."


def normalize_bid_record(item: Any, index: int = 0, stall_id: Optional[int] = None) -> Optional[BidRecord]:
    """
    Turn one loosely shaped bid payload into a BidRecord.

    Returns None (and logs why) when the payload cannot be a bid at all,
    e.g. it is not an object or has no positive amount.
    """
    if not isinstance(item, dict):
        logger.warning(f"Dropping bid record #{index}: expected an object, got {type(item).__name__}")
        return None

    # a null under the first spelling must not hide a value under another
    cleaned = {key: value for key, value in item.items() if value is not None}
    try:
        record = BidRecord.model_validate(cleaned)
    except ValidationError as e:
        logger.warning(f"Dropping bid record #{index}: {validation_reason(e)}")
        return None

    defaults = {}
    if record.stall_id is None and stall_id is not None:
        defaults["stall_id"] = stall_id
    if record.rank is None:
        defaults["rank"] = index + 1
    return record.model_copy(update=defaults) if defaults else record


def normalize_bid_records(items: Any, stall_id: Optional[int] = None) -> List[BidRecord]:
    if items is None:
        return []
    if not isinstance(items, list):
        logger.warning(f"Expected a list of bids, got {type(items).__name__}; treating as empty")
        return []

    records = []
    for index, item in enumerate(items):
        record = normalize_bid_record(item, index, stall_id)
        if record is not None:
            records.append(record)
    return records


class BidService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def place_bid(self, request: BidRequest) -> BidResponse:
        """
        POST the bid. The backend alone decides whether it is accepted; a
        refusal (error status or success=false) raises BidRejectedError
        carrying the backend's message when it sent one.
        """
        try:
            data = await self.api.post("/bids/place", json=request.model_dump(by_alias=True))
        except NotAuthenticatedError:
            raise
        except ApiError as e:
            raise BidRejectedError(e.status_code, e.server_message or FAILED_BID_MESSAGE, e.payload) from e

        raw = dict(data) if isinstance(data, dict) else {}
        raw_bid = raw.pop("bid", None)
        response = BidResponse.model_validate(raw)
        if raw_bid is not None:
            response = response.model_copy(
                update={"bid": normalize_bid_record(raw_bid, stall_id=request.stall_id)}
            )

        if not response.success:
            raise BidRejectedError(200, response.message or FAILED_BID_MESSAGE, data)
        return response

    async def get_bid_history(self, stall_id: int) -> List[BidRecord]:
        return normalize_bid_records(await self.api.get(f"/bids/stall/{stall_id}/history"), stall_id)

    async def get_stall_bids(self, stall_id: int) -> List[BidRecord]:
        return normalize_bid_records(await self.api.get(f"/bids/stall/{stall_id}"), stall_id)

    async def get_my_bids(self, user_id: int) -> List[BidRecord]:
        return normalize_bid_records(await self.api.get(f"/bids/user/{user_id}"))

    async def get_winning_bids(self, user_id: int) -> List[BidRecord]:
        return normalize_bid_records(await self.api.get(f"/bids/user/{user_id}/won"))

    async def get_all_bids(self) -> List[BidRecord]:
        return normalize_bid_records(await self.api.get("/bids/all"))

    async def get_highest_bid(self, stall_id: int) -> HighestBid:
        return HighestBid.model_validate(await self.api.get(f"/bids/stall/{stall_id}/highest") or {})

    async def get_total_bids(self, stall_id: int) -> int:
        data = await self.api.get(f"/bids/stall/{stall_id}/count") or {}
        return int(data.get("count", 0))

    async def declare_winner(self, stall_id: int) -> Any:
        """Admin only; passthrough"""
        logger.info(f"Declaring winner for stall {stall_id}")
        return await self.api.post(f"/bids/stall/{stall_id}/declare-winner", json={})
