from enum import Enum

class StallStatus(str, Enum):
    available = "AVAILABLE"
    booked = "BOOKED"
    active = "ACTIVE"
    closed = "CLOSED"
    # anything the backend sends that is not one of the above
    unknown = "UNKNOWN"
