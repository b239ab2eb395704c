from datetime import date
from typing import Optional
from pydantic import BaseModel, Field, model_validator
from common.models.invoice import PaymentMethod
from common.utils.constants import MAX_STAY


class BookingRequest(BaseModel):
    room_id: str = Field(min_length=1)
    checkin: date
    checkout: date
    guests: int = Field(default=1, ge=1)
    # front desk only: book on behalf of a guest, optionally paid at the desk
    user_id: Optional[str] = Field(default=None, min_length=1)
    payment_method: Optional[PaymentMethod] = None

    @model_validator(mode="after")
    def validate_dates(self):
        if self.checkout <= self.checkin:
            raise ValueError("checkout must be after checkin")
        if (self.checkout - self.checkin).days > MAX_STAY:
            raise ValueError(f"Maximum stay is {MAX_STAY} days")
        return self

    @property
    def on_behalf_of_guest(self) -> bool:
        return self.user_id is not None or self.payment_method is not None


class RescheduleRequest(BaseModel):
    checkin: date
    checkout: date

    @model_validator(mode="after")
    def validate_dates(self):
        if self.checkout <= self.checkin:
            raise ValueError("checkout must be after checkin")
        return self
