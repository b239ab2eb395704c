from enum import Enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


class GatewayOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"

    @property
    def is_terminal(self) -> bool:
        return self != GatewayOutcome.PENDING


@dataclass
class PaymentInitiation:
    booking_id: str
    reference: str
    redirect_url: str
    amount: Decimal


@dataclass
class VerificationResult:
    booking_id: str
    outcome: GatewayOutcome
    changed: bool


@dataclass
class RefundOutcome:
    reference: Optional[str]
    amount: Decimal
    succeeded: bool
    detail: Optional[str] = None
