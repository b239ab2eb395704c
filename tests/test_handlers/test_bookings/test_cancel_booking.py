import importlib
import json
import os
import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

from common.models.bookings import Booking, BookingStatus, CancellationResult
from common.models.users import UserRole
from common.utils.custom_exceptions import Forbidden, InvalidTransition, NotFoundException


class CancelBookingTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.env = patch.dict(os.environ, {"TABLE_NAME": "test-table"}, clear=False)
        cls.env.start()
        cls.resource = patch("handlers.bookings.cancel_booking.resource")
        mock_res = cls.resource.start()
        mock_res.return_value.Table.return_value = MagicMock()
        import handlers.bookings.cancel_booking as mod
        cls.mod = importlib.reload(mod)

    @classmethod
    def tearDownClass(cls):
        cls.resource.stop()
        cls.env.stop()

    def setUp(self):
        self.p_cancel = patch.object(self.mod.booking_service, "cancel_booking")
        self.mock_cancel = self.p_cancel.start()
        self.booking = Booking(
            booking_id="b1",
            user_id="u1",
            room_id="101",
            checkin=date(2030, 6, 1),
            checkout=date(2030, 6, 3),
            guests=1,
            total_price=Decimal("2000"),
            status=BookingStatus.CANCELLED,
        )

    def tearDown(self):
        self.p_cancel.stop()

    def _event(self, booking_id="b1", role="CUSTOMER"):
        return {
            "requestContext": {"authorizer": {"user_id": "u1", "role": role}},
            "pathParameters": {"booking_id": booking_id} if booking_id else None,
        }

    def test_missing_booking_id_returns_400(self):
        resp = self.mod.cancel_booking(self._event(booking_id=None), None)
        self.assertEqual(400, resp["statusCode"])

    def test_refund_amount_is_reported(self):
        self.mock_cancel.return_value = CancellationResult(self.booking, refund_amount=Decimal("1900"))

        resp = self.mod.cancel_booking(self._event(), None)

        self.assertEqual(200, resp["statusCode"])
        data = json.loads(resp["body"])["data"]
        self.assertEqual(data["refund_amount"], "1900.00")
        self.assertNotIn("warning", data)
        self.mock_cancel.assert_called_once_with("b1", "u1", UserRole.CUSTOMER)

    def test_pending_refund_warning_is_reported(self):
        self.mock_cancel.return_value = CancellationResult(
            self.booking, refund_amount=Decimal("1900"), warning="refund pending"
        )

        resp = self.mod.cancel_booking(self._event(), None)

        self.assertEqual(200, resp["statusCode"])
        self.assertEqual(json.loads(resp["body"])["data"]["warning"], "refund pending")

    def test_error_mapping(self):
        cases = [
            (Forbidden("no"), 403),
            (NotFoundException("booking", "b1", 404), 404),
            (InvalidTransition("already cancelled"), 409),
            (Exception("boom"), 500),
        ]
        for err, status in cases:
            self.mock_cancel.side_effect = err
            resp = self.mod.cancel_booking(self._event(), None)
            self.assertEqual(status, resp["statusCode"])


if __name__ == "__main__":
    unittest.main()
