from enum import Enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List


class FoodPaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class FoodOrderItem:
    name: str
    price: Decimal
    quantity: int = 1


@dataclass
class FoodOrder:
    order_id: str
    room_id: str
    items: List[FoodOrderItem] = field(default_factory=list)
    payment_status: FoodPaymentStatus = FoodPaymentStatus.PENDING
