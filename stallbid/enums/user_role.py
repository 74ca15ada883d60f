from enum import Enum

class UserRole(str, Enum):
    user = "USER"
    bidder = "BIDDER"
    admin = "ADMIN"


class AuthProvider(str, Enum):
    local = "LOCAL"
    google = "GOOGLE"
