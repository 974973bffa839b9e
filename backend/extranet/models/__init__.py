from extranet.models.partner import Partner
from extranet.models.room import RatePlan, RoomType
from extranet.models.ledger import RoomInventory, RoomPrice

__all__ = [
    "Partner",
    "RatePlan",
    "RoomInventory",
    "RoomPrice",
    "RoomType",
]
