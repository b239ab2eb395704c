import logging
from decimal import Decimal
from typing import Optional

import httpx

from common.models.payments import GatewayOutcome
from common.utils.custom_exceptions import (
    GatewayError,
    GatewayTimeout,
    PaymentGatewayUnconfigured,
)
from common.utils.money import format_amount

logger = logging.getLogger(__name__)

_SUCCESS = {"success"}
_FAILED = {"failed", "failure", "cancelled", "canceled", "reversed"}


class ChapaClient:
    """Thin client over the hosted-checkout endpoints we use.

    Every call is bounded by ``timeout``. A timeout is raised as
    ``GatewayTimeout`` because the charge may still have gone through.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        base_url: str = "https://api.chapa.co/v1",
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http_client

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def initialize_transaction(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        callback_url: str,
        return_url: str,
        customer: Optional[dict] = None,
    ) -> str:
        payload = {
            "amount": format_amount(amount),
            "currency": currency,
            "tx_ref": reference,
            "callback_url": callback_url,
            "return_url": return_url,
        }
        payload.update(customer or {})
        body = self._request("POST", "/transaction/initialize", json=payload)
        checkout_url = (body.get("data") or {}).get("checkout_url")
        if not checkout_url:
            raise GatewayError("gateway returned no checkout url", raw_response=body)
        return checkout_url

    def verify_transaction(self, reference: str) -> GatewayOutcome:
        body = self._request("GET", f"/transaction/verify/{reference}")
        data = body.get("data") or {}
        status = str(data.get("status") or body.get("status") or "").lower()
        if status in _SUCCESS:
            return GatewayOutcome.SUCCESS
        if status in _FAILED:
            return GatewayOutcome.FAILED
        return GatewayOutcome.PENDING

    def refund(self, reference: str, amount: Decimal, reason: str = "Booking cancellation") -> dict:
        return self._request(
            "POST",
            "/refunds",
            json={"tx_ref": reference, "amount": format_amount(amount), "reason": reason},
        )

    def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.configured:
            raise PaymentGatewayUnconfigured("payment gateway not configured")
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        url = f"{self.base_url}{path}"
        try:
            if self._http is not None:
                resp = self._http.request(method, url, headers=headers, **kwargs)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Gateway {method} {path} timed out after {self.timeout}s")
            raise GatewayTimeout(f"gateway timed out: {e}")
        except httpx.TransportError as e:
            logger.error(f"Gateway {method} {path} transport error: {e}")
            raise GatewayError(f"gateway unreachable: {e}")

        try:
            body = resp.json()
        except ValueError:
            body = {"raw": resp.text}

        if resp.is_error:
            logger.error(f"Gateway {method} {path} returned {resp.status_code}: {body}")
            raise GatewayError(
                f"gateway returned {resp.status_code}",
                status_code=resp.status_code,
                raw_response=body,
            )
        return body
