from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from common.utils.constants import TAX_RATE
from common.utils.money import quantize


class InvoiceStatus(str, Enum):
    OPEN = "OPEN"
    PAID = "PAID"
    VOID = "VOID"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CHAPA = "CHAPA"
    CARD = "CARD"


# taken at the front desk, so the booking is paid the moment it is made
DESK_PAYMENT_METHODS = frozenset({PaymentMethod.CASH, PaymentMethod.CARD})


@dataclass
class LineItem:
    description: str
    quantity: int
    unit_price: Decimal
    is_food: bool = False

    @property
    def total(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)


def _tax_for(subtotal: Decimal) -> Decimal:
    return quantize(subtotal * TAX_RATE)


@dataclass
class Invoice:
    """Running bill for one confirmed booking.

    ``subtotal``, ``tax`` and ``total_amount`` are always derived from the
    line items so they cannot drift from them.
    """

    invoice_id: str
    booking_id: str
    user_id: str
    room_id: str
    line_items: List[LineItem] = field(default_factory=list)
    status: InvoiceStatus = InvoiceStatus.OPEN
    paid_at: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def subtotal(self) -> Decimal:
        return quantize(sum((item.total for item in self.line_items), Decimal("0")))

    @property
    def tax(self) -> Decimal:
        return _tax_for(self.subtotal)

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.tax

    @property
    def is_open(self) -> bool:
        return self.status == InvoiceStatus.OPEN


@dataclass
class Bill:
    """Stored invoice plus food charges that are not yet written into it."""

    invoice: Invoice
    food_items: List[LineItem] = field(default_factory=list)

    @property
    def subtotal(self) -> Decimal:
        food = sum((item.total for item in self.food_items), Decimal("0"))
        return quantize(self.invoice.subtotal + food)

    @property
    def tax(self) -> Decimal:
        return _tax_for(self.subtotal)

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.tax
