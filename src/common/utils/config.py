import os
from dataclasses import dataclass
from typing import Optional

from common.utils.constants import DEFAULT_CURRENCY, HOLD_WINDOW_MINUTES


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    table_name: Optional[str]
    region: str = "ap-south-1"
    chapa_secret_key: Optional[str] = None
    chapa_base_url: str = "https://api.chapa.co/v1"
    currency: str = DEFAULT_CURRENCY
    api_url: str = ""
    client_url: str = ""
    gateway_timeout_seconds: int = 10
    hold_window_minutes: int = HOLD_WINDOW_MINUTES
    reconcile_lambda_arn: Optional[str] = None
    scheduler_role_arn: Optional[str] = None
    event_bus_name: Optional[str] = None
    invoice_sender: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            table_name=os.environ.get("TABLE_NAME"),
            region=os.environ.get("AWS_REGION", "ap-south-1"),
            chapa_secret_key=os.environ.get("CHAPA_SECRET_KEY") or None,
            chapa_base_url=os.environ.get("CHAPA_BASE_URL", "https://api.chapa.co/v1"),
            currency=os.environ.get("PAYMENT_CURRENCY", DEFAULT_CURRENCY),
            api_url=os.environ.get("API_URL", "").rstrip("/"),
            client_url=os.environ.get("CLIENT_URL", "").rstrip("/"),
            gateway_timeout_seconds=_env_int("GATEWAY_TIMEOUT_SECONDS", 10),
            hold_window_minutes=_env_int("HOLD_WINDOW_MINUTES", HOLD_WINDOW_MINUTES),
            reconcile_lambda_arn=os.environ.get("RECONCILE_LAMBDA_ARN") or None,
            scheduler_role_arn=os.environ.get("SCHEDULER_ROLE_ARN") or None,
            event_bus_name=os.environ.get("EVENT_BUS_NAME") or None,
            invoice_sender=os.environ.get("INVOICE_SENDER") or None,
        )

    @property
    def callback_url(self) -> str:
        return f"{self.api_url}/api/payments/callback"

    @property
    def return_url(self) -> str:
        return f"{self.client_url}/customer/bookings"

    @property
    def scheduler_enabled(self) -> bool:
        return bool(self.reconcile_lambda_arn and self.scheduler_role_arn)
