import logging
from typing import Iterable, List, Optional

from botocore.exceptions import ClientError

from common.models.rooms import Category, Cleanliness, Occupancy, Room
from common.repository.room_repo import (
    RoomRepository,
    cancellation_codes,
    is_conditional_failure,
)
from common.utils.custom_exceptions import ConflictError, NotFoundException, RoomUnavailable

logger = logging.getLogger(__name__)


class RoomLedger:
    """Every change to a room's occupancy or cleanliness goes through here."""

    def __init__(self, room_repo: RoomRepository):
        self.room_repo = room_repo

    def get(self, room_id: str) -> Room:
        room = self.room_repo.get_room_by_id(room_id)
        if room is None:
            raise NotFoundException("room", room_id, 404)
        return room

    @staticmethod
    def is_offerable(room: Room) -> bool:
        return room.occupancy == Occupancy.VACANT and not room.under_maintenance

    def list_by_category(self, category: Category) -> List[Room]:
        rooms = []
        for room_id in self.room_repo.get_rooms_ids_by_category(category):
            room = self.room_repo.get_room_by_id(room_id)
            if room is not None:
                rooms.append(room)
        return rooms

    def add_room(self, room: Room):
        try:
            self.room_repo.add_room(room)
        except ClientError as err:
            if "ConditionalCheckFailed" in cancellation_codes(err):
                raise ConflictError(f"room {room.room_id} already exists")
            raise
        logger.info(f"Room {room.room_id} added")

    def reserve(self, room_id: str, booking_id: str, with_items: Iterable[dict] = ()):
        """Flip the room to OCCUPIED together with ``with_items`` in one transaction.

        The room update is a compare-and-swap on VACANT, so of two concurrent
        reservations for the same room only one can commit.
        """
        items = [self.room_repo.reserve_update(room_id, booking_id), *with_items]
        try:
            self.room_repo.transact(items)
        except ClientError as err:
            codes = cancellation_codes(err)
            if codes and codes[0] == "ConditionalCheckFailed":
                logger.info(f"Room {room_id} was taken before booking {booking_id} committed")
                raise RoomUnavailable(f"room {room_id} is not available")
            raise
        logger.info(f"Room {room_id} reserved for booking {booking_id}")

    def release(self, room_id: str, booking_id: str) -> bool:
        return self._release(room_id, booking_id, None)

    def release_and_mark_dirty(self, room_id: str, booking_id: str) -> bool:
        return self._release(room_id, booking_id, Cleanliness.DIRTY)

    def _release(self, room_id: str, booking_id: str, cleanliness: Optional[Cleanliness]) -> bool:
        try:
            self.room_repo.release(room_id, booking_id, cleanliness)
        except ClientError as err:
            if not is_conditional_failure(err):
                logger.error(f"Error releasing room {room_id}: {err}")
                raise
            room = self.get(room_id)
            logger.warning(
                f"Room {room_id} is held by booking {room.held_by}; "
                f"release for booking {booking_id} skipped"
            )
            if cleanliness is not None:
                self.room_repo.update_cleanliness(room_id, cleanliness)
            return False
        logger.info(f"Room {room_id} released by booking {booking_id}")
        return True

    def set_maintenance(self, room_id: str):
        try:
            self.room_repo.update_cleanliness(
                room_id, Cleanliness.MAINTENANCE, require_vacant=True
            )
        except ClientError as err:
            if not is_conditional_failure(err):
                raise
            self.get(room_id)
            raise RoomUnavailable(f"room {room_id} is occupied")

    def set_cleanliness(self, room_id: str, cleanliness: Cleanliness):
        if cleanliness == Cleanliness.MAINTENANCE:
            self.set_maintenance(room_id)
        else:
            self.room_repo.update_cleanliness(room_id, cleanliness)
