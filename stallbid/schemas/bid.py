from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator

from stallbid.enums import BidStatus
from stallbid.schemas.common import empty_to_none, ensure_utc

ANONYMOUS_BIDDER = "Anonymous"


class BidRecord(BaseModel):
    """
    One accepted bid. Field names differ between backend endpoints, so every
    field accepts the known spellings.
    """
    bid_id: Optional[int] = Field(None, validation_alias=AliasChoices("bidId", "id", "bid_id"))
    stall_id: Optional[int] = Field(None, validation_alias=AliasChoices("stallId", "stall_id"))
    stall_name: Optional[str] = Field(None, validation_alias=AliasChoices("stallName", "stall_name"))
    stall_no: Optional[int] = Field(None, validation_alias=AliasChoices("stallNo", "stall_no"))
    bidder_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("bidderId", "userId", "bidder_id")
    )
    bidder_name: str = Field(
        ANONYMOUS_BIDDER, validation_alias=AliasChoices("bidderName", "userName", "bidder_name")
    )
    amount: Decimal = Field(..., gt=0, validation_alias=AliasChoices("biddedPrice", "amount"))
    bid_time: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("bidTime", "time", "timestamp", "createdAt", "bid_time")
    )
    status: BidStatus = BidStatus.active
    rank: Optional[int] = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("bidder_name", mode="before")
    @classmethod
    def anonymous_when_blank(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return ANONYMOUS_BIDDER
        return v

    @field_validator("bid_time", mode="before")
    @classmethod
    def blank_time(cls, v):
        return empty_to_none(v)

    @field_validator("bid_time")
    @classmethod
    def time_utc(cls, v):
        return ensure_utc(v)

    @field_validator("status", mode="before")
    @classmethod
    def upper_status(cls, v):
        return v.upper() if isinstance(v, str) else v


class BidRequest(BaseModel):
    stall_id: int = Field(..., alias="stallId")
    bidder_id: int = Field(..., alias="bidderId")
    bidded_price: Decimal = Field(..., gt=0, alias="biddedPrice")

    model_config = ConfigDict(populate_by_name=True)

    @field_serializer("bidded_price")
    def serialize_price(self, v: Decimal, _info):
        return float(v)


class BidResponse(BaseModel):
    """Envelope returned by POST /bids/place"""
    success: bool = True
    message: str = ""
    bid: Optional[BidRecord] = None

    model_config = ConfigDict(extra="ignore")


class HighestBid(BaseModel):
    amount: Decimal = Decimal("0")
    bidder_name: str = Field(ANONYMOUS_BIDDER, validation_alias=AliasChoices("bidderName", "bidder_name"))

    @field_validator("bidder_name", mode="before")
    @classmethod
    def anonymous_when_blank(cls, v):
        return v or ANONYMOUS_BIDDER
