import importlib
import json
import os
import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

from common.models.bookings import Booking
from common.utils.custom_exceptions import Forbidden, InvalidDateRange, OverlapConflict


class RescheduleBookingTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.env = patch.dict(os.environ, {"TABLE_NAME": "test-table"}, clear=False)
        cls.env.start()
        cls.resource = patch("handlers.bookings.reschedule_booking.resource")
        mock_res = cls.resource.start()
        mock_res.return_value.Table.return_value = MagicMock()
        import handlers.bookings.reschedule_booking as mod
        cls.mod = importlib.reload(mod)

    @classmethod
    def tearDownClass(cls):
        cls.resource.stop()
        cls.env.stop()

    def setUp(self):
        self.p_reschedule = patch.object(self.mod.booking_service, "reschedule")
        self.mock_reschedule = self.p_reschedule.start()

    def tearDown(self):
        self.p_reschedule.stop()

    def _event(self, body=None):
        return {
            "requestContext": {"authorizer": {"user_id": "u1", "role": "CUSTOMER"}},
            "pathParameters": {"booking_id": "b1"},
            "body": body,
        }

    def test_invalid_dates_return_400(self):
        body = json.dumps({"checkin": "2030-06-05", "checkout": "2030-06-01"})
        resp = self.mod.reschedule_booking(self._event(body), None)
        self.assertEqual(400, resp["statusCode"])

    def test_success(self):
        self.mock_reschedule.return_value = Booking(
            booking_id="b1",
            user_id="u1",
            room_id="101",
            checkin=date(2030, 6, 2),
            checkout=date(2030, 6, 5),
            guests=1,
            total_price=Decimal("3000"),
        )
        body = json.dumps({"checkin": "2030-06-02", "checkout": "2030-06-05"})

        resp = self.mod.reschedule_booking(self._event(body), None)

        self.assertEqual(200, resp["statusCode"])
        self.assertEqual(json.loads(resp["body"])["data"]["total_price"], "3000.00")

    def test_error_mapping(self):
        body = json.dumps({"checkin": "2030-06-02", "checkout": "2030-06-05"})
        cases = [
            (InvalidDateRange("too long"), 400),
            (Forbidden("no"), 403),
            (OverlapConflict("taken"), 409),
        ]
        for err, status in cases:
            self.mock_reschedule.side_effect = err
            resp = self.mod.reschedule_booking(self._event(body), None)
            self.assertEqual(status, resp["statusCode"])


if __name__ == "__main__":
    unittest.main()
