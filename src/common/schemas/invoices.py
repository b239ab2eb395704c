from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field
from common.models.invoice import PaymentMethod


class ChargeRequest(BaseModel):
    description: str = Field(min_length=1, max_length=200)
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(ge=0)


class CheckoutRequest(BaseModel):
    payment_method: PaymentMethod
    email: Optional[str] = None
