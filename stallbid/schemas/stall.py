from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from stallbid.enums import StallStatus
from stallbid.schemas.common import empty_to_none, ensure_utc, is_parseable_datetime

_DATE_KEYS = {
    "bidding_start": ("biddingStart", "biddingStartTime", "bidding_start"),
    "bidding_end": ("biddingEnd", "biddingEndTime", "bidding_end"),
    "created_at": ("createdAt", "created_at"),
}


class StallWinner(BaseModel):
    student_id: int = Field(..., alias="studentId")
    student_name: Optional[str] = Field(None, alias="studentName")
    student_email: Optional[str] = Field(None, alias="studentEmail")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class StallSnapshot(BaseModel):
    """Read-only copy of a stall's auction fields as last fetched from the backend"""

    # identity
    stall_id: int = Field(..., validation_alias=AliasChoices("stallId", "id", "stall_id"))
    stall_no: Optional[int] = Field(None, alias="stallNo")
    stall_name: str = Field("", alias="stallName")

    # descriptive
    description: Optional[str] = None
    location: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    base_price: Decimal = Field(Decimal("0"), alias="basePrice")
    original_price: Optional[Decimal] = Field(None, alias="originalPrice")
    max_bidders: Optional[int] = Field(None, alias="maxBidders")

    # auction
    current_highest_bid: Optional[Decimal] = Field(None, alias="currentHighestBid")
    total_bids: int = Field(0, alias="totalBids")
    status: StallStatus = StallStatus.available
    bidding_start: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("biddingStart", "biddingStartTime", "bidding_start")
    )
    bidding_end: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("biddingEnd", "biddingEndTime", "bidding_end")
    )
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    winner: Optional[StallWinner] = None

    # fields whose date could not be parsed; they are left unset
    malformed_dates: Tuple[str, ...] = ()

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_malformed_dates(cls, data):
        if not isinstance(data, dict):
            return data

        data = dict(data)
        malformed = []
        for field, keys in _DATE_KEYS.items():
            for key in keys:
                value = empty_to_none(data.get(key))
                if value is not None and not is_parseable_datetime(value):
                    logger.warning(f"Stall {data.get('stallId', data.get('id'))}: unparseable {key} {value!r}")
                    data[key] = None
                    if field not in malformed:
                        malformed.append(field)
        if malformed:
            data["malformed_dates"] = tuple(malformed)
        return data

    @field_validator("bidding_start", "bidding_end", "created_at", mode="before")
    @classmethod
    def blank_timestamp(cls, v):
        return empty_to_none(v)

    @field_validator("bidding_start", "bidding_end", "created_at")
    @classmethod
    def timestamp_utc(cls, v):
        return ensure_utc(v)

    @field_validator("total_bids", mode="before")
    @classmethod
    def null_count(cls, v):
        return 0 if v is None else v

    @field_validator("status", mode="before")
    @classmethod
    def upper_status(cls, v):
        if v is None:
            return StallStatus.available
        if isinstance(v, StallStatus):
            return v
        try:
            return StallStatus(str(v).strip().upper())
        except ValueError:
            logger.warning(f"Unknown stall status {v!r}")
            return StallStatus.unknown

    @property
    def has_bids(self) -> bool:
        return bool(self.current_highest_bid)

    @property
    def leading_price(self) -> Decimal:
        """Highest accepted bid, or the base price while nobody has bid"""
        if self.current_highest_bid:
            return self.current_highest_bid
        return self.base_price
