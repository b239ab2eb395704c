from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class InitiatePaymentRequest(BaseModel):
    booking_id: str = Field(min_length=1)
    amount: Optional[Decimal] = Field(default=None, gt=0)
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def customer(self) -> dict:
        fields = {
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }
        return {k: v for k, v in fields.items() if v}


class PaymentCallback(BaseModel):
    """Webhook and return-redirect payloads name the reference differently."""

    tx_ref: Optional[str] = None
    trx_ref: Optional[str] = None
    reference: Optional[str] = None

    @model_validator(mode="after")
    def require_reference(self):
        if not self.payment_reference:
            raise ValueError("tx_ref is required")
        return self

    @property
    def payment_reference(self) -> Optional[str]:
        return self.tx_ref or self.trx_ref or self.reference
