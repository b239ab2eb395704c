import random
import unittest
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

from common.models.bookings import Booking, BookingStatus
from common.services.availability import AvailabilityChecker, intervals_overlap, validate_range
from common.utils.custom_exceptions import InvalidDateRange


def _booking(booking_id, checkin, checkout, status=BookingStatus.CONFIRMED):
    return Booking(
        booking_id=booking_id,
        user_id="u1",
        room_id="101",
        checkin=checkin,
        checkout=checkout,
        guests=1,
        total_price=Decimal("1000"),
        status=status,
    )


class TestIntervalsOverlap(unittest.TestCase):
    def test_back_to_back_stays_do_not_overlap(self):
        d = date(2024, 6, 1)
        self.assertFalse(intervals_overlap(d, d + timedelta(2), d + timedelta(2), d + timedelta(4)))

    def test_partial_overlap(self):
        d = date(2024, 6, 1)
        self.assertTrue(intervals_overlap(d, d + timedelta(2), d + timedelta(1), d + timedelta(3)))

    def test_containment(self):
        d = date(2024, 6, 1)
        self.assertTrue(intervals_overlap(d, d + timedelta(10), d + timedelta(3), d + timedelta(4)))

    def test_matches_night_by_night_comparison(self):
        rng = random.Random(1729)
        base = date(2024, 1, 1)
        for _ in range(2000):
            a = base + timedelta(rng.randint(0, 60))
            b = a + timedelta(rng.randint(1, 10))
            c = base + timedelta(rng.randint(0, 60))
            d = c + timedelta(rng.randint(1, 10))
            nights_ab = {a + timedelta(i) for i in range((b - a).days)}
            nights_cd = {c + timedelta(i) for i in range((d - c).days)}
            self.assertEqual(intervals_overlap(a, b, c, d), bool(nights_ab & nights_cd))
            self.assertEqual(intervals_overlap(a, b, c, d), intervals_overlap(c, d, a, b))


class TestValidateRange(unittest.TestCase):
    def test_checkout_must_follow_checkin(self):
        d = date(2024, 6, 1)
        with self.assertRaises(InvalidDateRange):
            validate_range(d, d)
        with self.assertRaises(InvalidDateRange):
            validate_range(d, d - timedelta(1))


class TestAvailabilityChecker(unittest.TestCase):
    def setUp(self):
        self.repo = MagicMock()
        self.checker = AvailabilityChecker(self.repo)
        self.d = date(2024, 6, 1)

    def test_only_active_bookings_block(self):
        self.repo.get_room_bookings.return_value = [
            _booking("cancelled", self.d, self.d + timedelta(3), BookingStatus.CANCELLED),
            _booking("completed", self.d, self.d + timedelta(3), BookingStatus.COMPLETED),
        ]

        self.assertFalse(self.checker.has_conflict("101", self.d, self.d + timedelta(2)))

    def test_pending_and_confirmed_block(self):
        for status in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            self.repo.get_room_bookings.return_value = [
                _booking("b1", self.d, self.d + timedelta(3), status)
            ]
            self.assertTrue(self.checker.has_conflict("101", self.d + timedelta(1), self.d + timedelta(2)))

    def test_excluded_booking_is_ignored(self):
        self.repo.get_room_bookings.return_value = [_booking("b1", self.d, self.d + timedelta(3))]

        conflicts = self.checker.conflicting_bookings(
            "101", self.d, self.d + timedelta(2), exclude_booking_id="b1"
        )

        self.assertEqual(conflicts, [])

    def test_invalid_range_raises_before_lookup(self):
        with self.assertRaises(InvalidDateRange):
            self.checker.has_conflict("101", self.d, self.d)
        self.repo.get_room_bookings.assert_not_called()

    def test_room_available_requires_vacant_clean_room(self):
        from fakes import make_room
        from common.models.rooms import Cleanliness, Occupancy

        self.repo.get_room_bookings.return_value = []
        checkout = self.d + timedelta(2)

        self.assertTrue(self.checker.is_room_available(make_room(), self.d, checkout))
        self.assertFalse(
            self.checker.is_room_available(make_room(occupancy=Occupancy.OCCUPIED), self.d, checkout)
        )
        self.assertFalse(
            self.checker.is_room_available(
                make_room(cleanliness=Cleanliness.MAINTENANCE), self.d, checkout
            )
        )


if __name__ == "__main__":
    unittest.main()
