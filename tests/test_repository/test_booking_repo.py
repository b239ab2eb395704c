import unittest
from unittest.mock import MagicMock
from datetime import date, datetime, timezone
from decimal import Decimal
from botocore.exceptions import ClientError

from common.repository.booking_repo import BookingRepository
from common.models.bookings import Booking, BookingStatus, PaymentStatus


def _cancelled(codes):
    return ClientError(
        error_response={
            "Error": {"Code": "TransactionCanceledException", "Message": "cancelled"},
            "CancellationReasons": [{"Code": code} for code in codes],
        },
        operation_name="TransactWriteItems"
    )


class TestBookingRepository(unittest.TestCase):

    def setUp(self):
        self.table = MagicMock()
        self.table.name = "hotel"
        self.client = MagicMock()

        self.table.meta.client = self.client
        self.repo = BookingRepository(self.table, self.client)

        self.booking = Booking(
            booking_id="b1",
            user_id="u1",
            room_id="101",
            checkin=date(2024, 6, 1),
            checkout=date(2024, 6, 3),
            guests=1,
            total_price=Decimal("2000.00"),
            created_at=datetime(2024, 5, 20, 9, 0, tzinfo=timezone.utc),
        )

    def _item(self, **overrides):
        item = {
            "pk": "BOOKING#b1",
            "sk": "DETAILS",
            "booking_id": "b1",
            "user_id": "u1",
            "room_id": "101",
            "check_in": "2024-06-01",
            "check_out": "2024-06-03",
            "guests": Decimal("1"),
            "total_price": Decimal("2000.00"),
            "booking_status": "PENDING",
            "payment_status": "PENDING",
            "created_at": "2024-05-20T09:00:00+00:00",
        }
        item.update(overrides)
        return item

    def test_booking_put_items_cover_all_copies(self):
        items = self.repo.booking_put_items(self.booking)

        keys = [(i["Put"]["Item"]["pk"], i["Put"]["Item"]["sk"]) for i in items]
        self.assertEqual(keys, [
            ("BOOKING#b1", "DETAILS"),
            ("USER#u1", "BOOKING#b1"),
            ("ROOM#101", "BOOKING#2024-06-01#b1"),
        ])
        details = items[0]["Put"]
        self.assertEqual(details["ConditionExpression"], "attribute_not_exists(pk)")
        self.assertEqual(details["Item"]["total_price"], Decimal("2000.00"))
        self.assertEqual(details["Item"]["booking_status"], "PENDING")
        self.assertNotIn("payment_ref", details["Item"])

    def test_get_booking_by_id(self):
        self.table.get_item.return_value = {"Item": self._item(payment_ref="MESERET-b1-1")}

        booking = self.repo.get_booking_by_id("b1")

        _, kwargs = self.table.get_item.call_args
        self.assertTrue(kwargs["ConsistentRead"])
        self.assertEqual(booking.checkin, date(2024, 6, 1))
        self.assertEqual(booking.guests, 1)
        self.assertEqual(booking.payment_ref, "MESERET-b1-1")
        self.assertEqual(booking.created_at.tzinfo, timezone.utc)

    def test_get_booking_by_id_missing(self):
        self.table.get_item.return_value = {}

        self.assertIsNone(self.repo.get_booking_by_id("b1"))

    def test_get_booking_by_payment_ref_follows_pointer(self):
        self.table.get_item.side_effect = [
            {"Item": {"pk": "PAYREF#r", "sk": "BOOKING", "booking_id": "b1"}},
            {"Item": self._item()},
        ]

        booking = self.repo.get_booking_by_payment_ref("r")

        self.assertEqual(booking.booking_id, "b1")

    def test_get_room_bookings_paginates(self):
        self.table.query.side_effect = [
            {"Items": [self._item()], "LastEvaluatedKey": {"pk": "x"}},
            {"Items": [self._item(booking_id="b2")]},
        ]

        bookings = self.repo.get_room_bookings("101")

        self.assertEqual([b.booking_id for b in bookings], ["b1", "b2"])
        _, kwargs = self.table.query.call_args
        self.assertEqual(kwargs["ExclusiveStartKey"], {"pk": "x"})

    def test_list_bookings_by_status(self):
        self.table.scan.return_value = {"Items": [self._item(booking_status="CONFIRMED")]}

        bookings = self.repo.list_bookings_by_status([BookingStatus.CONFIRMED])

        self.assertEqual(bookings[0].status, BookingStatus.CONFIRMED)

    def test_transition_conditions_details_copy_only(self):
        applied = self.repo.transition(
            self.booking,
            BookingStatus.CONFIRMED,
            PaymentStatus.COMPLETED,
            expected_status=BookingStatus.PENDING,
        )

        self.assertTrue(applied)
        self.assertEqual(self.booking.status, BookingStatus.CONFIRMED)
        _, kwargs = self.client.transact_write_items.call_args
        updates = [i["Update"] for i in kwargs["TransactItems"]]
        self.assertEqual(len(updates), 3)
        self.assertIn("#booking_status = :expected", updates[0]["ConditionExpression"])
        self.assertNotIn("ConditionExpression", updates[1])
        self.assertNotIn(":expected", updates[2]["ExpressionAttributeValues"])

    def test_transition_lost_race_returns_false(self):
        self.client.transact_write_items.side_effect = _cancelled(
            ["ConditionalCheckFailed", "None", "None"]
        )

        applied = self.repo.transition(
            self.booking,
            BookingStatus.CONFIRMED,
            PaymentStatus.COMPLETED,
            expected_status=BookingStatus.PENDING,
        )

        self.assertFalse(applied)
        self.assertEqual(self.booking.status, BookingStatus.PENDING)

    def test_transition_other_errors_propagate(self):
        self.client.transact_write_items.side_effect = ClientError(
            error_response={"Error": {"Code": "ProvisionedThroughputExceededException"}},
            operation_name="TransactWriteItems"
        )

        with self.assertRaises(ClientError):
            self.repo.transition(
                self.booking, BookingStatus.CANCELLED, PaymentStatus.FAILED, BookingStatus.PENDING
            )

    def test_set_payment_ref_writes_pointer(self):
        self.assertTrue(self.repo.set_payment_ref(self.booking, "MESERET-b1-1"))

        _, kwargs = self.client.transact_write_items.call_args
        items = kwargs["TransactItems"]
        self.assertIn("attribute_not_exists(#payment_ref)", items[0]["Update"]["ConditionExpression"])
        self.assertEqual(items[-1]["Put"]["Item"]["pk"], "PAYREF#MESERET-b1-1")
        self.assertEqual(self.booking.payment_ref, "MESERET-b1-1")

    def test_set_payment_ref_when_attempt_exists(self):
        self.client.transact_write_items.side_effect = _cancelled(
            ["ConditionalCheckFailed", "None", "None", "None"]
        )

        self.assertFalse(self.repo.set_payment_ref(self.booking, "MESERET-b1-2"))
        self.assertIsNone(self.booking.payment_ref)

    def test_update_dates_moves_room_copy_when_checkin_changes(self):
        moved = self.repo.update_dates(
            self.booking, date(2024, 6, 2), date(2024, 6, 4), Decimal("2000.00")
        )

        self.assertTrue(moved)
        _, kwargs = self.client.transact_write_items.call_args
        items = kwargs["TransactItems"]
        self.assertEqual(items[2]["Delete"]["Key"]["sk"], "BOOKING#2024-06-01#b1")
        self.assertEqual(items[3]["Put"]["Item"]["sk"], "BOOKING#2024-06-02#b1")
        self.assertEqual(self.booking.checkin, date(2024, 6, 2))

    def test_update_dates_same_checkin_updates_in_place(self):
        self.repo.update_dates(self.booking, date(2024, 6, 1), date(2024, 6, 5), Decimal("4000.00"))

        _, kwargs = self.client.transact_write_items.call_args
        items = kwargs["TransactItems"]
        self.assertEqual(len(items), 3)
        self.assertIn("Update", items[2])


if __name__ == "__main__":
    unittest.main()
