from enum import Enum

class BidStatus(str, Enum):
    active = "ACTIVE"
    won = "WON"
    lost = "LOST"
    outbid = "OUTBID"
