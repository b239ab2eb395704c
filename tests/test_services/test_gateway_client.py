import json
import unittest
from decimal import Decimal

import httpx

from common.models.payments import GatewayOutcome
from common.services.gateway_client import ChapaClient
from common.utils.custom_exceptions import (
    GatewayError,
    GatewayTimeout,
    PaymentGatewayUnconfigured,
)


class TestChapaClient(unittest.TestCase):
    def _client(self, handler, secret="sk_test"):
        http = httpx.Client(transport=httpx.MockTransport(handler))
        return ChapaClient(secret, base_url="https://gateway.test/v1", http_client=http)

    def test_initialize_posts_reference_and_returns_checkout_url(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"status": "success", "data": {"checkout_url": "https://pay/abc"}}
            )

        url = self._client(handler).initialize_transaction(
            Decimal("2000"), "ETB", "MESERET-b1-1", "https://cb", "https://ret",
            customer={"email": "a@example.com"},
        )

        self.assertEqual(url, "https://pay/abc")
        self.assertEqual(seen["url"], "https://gateway.test/v1/transaction/initialize")
        self.assertEqual(seen["auth"], "Bearer sk_test")
        self.assertEqual(seen["body"]["amount"], "2000.00")
        self.assertEqual(seen["body"]["tx_ref"], "MESERET-b1-1")
        self.assertEqual(seen["body"]["email"], "a@example.com")

    def test_initialize_without_checkout_url_is_an_error(self):
        client = self._client(lambda request: httpx.Response(200, json={"data": {}}))

        with self.assertRaises(GatewayError):
            client.initialize_transaction(Decimal("1"), "ETB", "r", "cb", "ret")

    def test_verify_maps_statuses(self):
        statuses = {
            "success": GatewayOutcome.SUCCESS,
            "failed": GatewayOutcome.FAILED,
            "pending": GatewayOutcome.PENDING,
            "": GatewayOutcome.PENDING,
        }
        for raw, expected in statuses.items():
            client = self._client(
                lambda request, raw=raw: httpx.Response(200, json={"data": {"status": raw}})
            )
            self.assertEqual(client.verify_transaction("ref"), expected)

    def test_http_error_carries_raw_body(self):
        client = self._client(
            lambda request: httpx.Response(400, json={"message": "Invalid currency"})
        )

        with self.assertRaises(GatewayError) as ctx:
            client.refund("ref", Decimal("1900"))

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.raw_response, {"message": "Invalid currency"})

    def test_timeout_is_reported_as_gateway_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with self.assertRaises(GatewayTimeout):
            self._client(handler).verify_transaction("ref")

    def test_connection_error_is_gateway_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(GatewayError) as ctx:
            self._client(handler).verify_transaction("ref")
        self.assertNotIsInstance(ctx.exception, GatewayTimeout)

    def test_missing_key_fails_before_any_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        client = self._client(handler, secret=None)

        self.assertFalse(client.configured)
        with self.assertRaises(PaymentGatewayUnconfigured):
            client.verify_transaction("ref")
        self.assertEqual(calls, [])


if __name__ == "__main__":
    unittest.main()
