from datetime import date
from typing import List, Optional

from common.models.bookings import Booking
from common.models.rooms import Occupancy, Room
from common.repository.booking_repo import BookingRepository
from common.utils.custom_exceptions import InvalidDateRange


def intervals_overlap(a: date, b: date, c: date, d: date) -> bool:
    """Half-open ``[a, b)`` and ``[c, d)`` intersect."""
    return a < d and c < b


def validate_range(checkin: date, checkout: date):
    if checkout <= checkin:
        raise InvalidDateRange("checkout must be after checkin")


class AvailabilityChecker:
    def __init__(self, booking_repo: BookingRepository):
        self.booking_repo = booking_repo

    def conflicting_bookings(
        self,
        room_id: str,
        checkin: date,
        checkout: date,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        validate_range(checkin, checkout)
        return [
            booking
            for booking in self.booking_repo.get_room_bookings(room_id)
            if booking.is_active
            and booking.booking_id != exclude_booking_id
            and intervals_overlap(checkin, checkout, booking.checkin, booking.checkout)
        ]

    def has_conflict(
        self,
        room_id: str,
        checkin: date,
        checkout: date,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        return bool(self.conflicting_bookings(room_id, checkin, checkout, exclude_booking_id))

    def is_room_available(self, room: Room, checkin: date, checkout: date) -> bool:
        """Bookable right now: vacant, not in maintenance and free for the dates."""
        if room.occupancy != Occupancy.VACANT or room.under_maintenance:
            return False
        return not self.has_conflict(room.room_id, checkin, checkout)
