from enum import Enum
from decimal import Decimal
from typing import List, Optional
from dataclasses import dataclass, field


class Category(str, Enum):
    SINGLE = "SINGLE"
    DOUBLE = "DOUBLE"
    TRIPLE = "TRIPLE"
    FAMILY = "FAMILY"


class Occupancy(str, Enum):
    VACANT = "VACANT"
    OCCUPIED = "OCCUPIED"


class Cleanliness(str, Enum):
    CLEAN = "CLEAN"
    DIRTY = "DIRTY"
    MAINTENANCE = "MAINTENANCE"


@dataclass
class Room:
    room_id: str
    category: Category
    price_per_night: Decimal
    capacity: int = 1
    amenities: List[str] = field(default_factory=list)
    floor: Optional[int] = None
    occupancy: Occupancy = Occupancy.VACANT
    cleanliness: Cleanliness = Cleanliness.CLEAN
    held_by: Optional[str] = None

    @property
    def under_maintenance(self) -> bool:
        return self.cleanliness == Cleanliness.MAINTENANCE
