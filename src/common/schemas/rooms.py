from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field
from common.models.rooms import Category, Cleanliness


class AddRoomRequest(BaseModel):
    room_id: str = Field(min_length=1)
    category: Category
    price_per_night: Decimal = Field(gt=0)
    capacity: int = Field(default=1, ge=1)
    floor: Optional[int] = None
    amenities: List[str] = Field(default_factory=list)


class UpdateRoomRequest(BaseModel):
    cleanliness: Cleanliness
