from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Optional, List
from boto3.dynamodb.conditions import Key
from common.models.rooms import Room, Category, Occupancy, Cleanliness
from common.utils.custom_exceptions import NotFoundException

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)


def is_conditional_failure(err: ClientError) -> bool:
    return err.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def cancellation_codes(err: ClientError) -> List[str]:
    """Per-item reason codes of a cancelled ``TransactWriteItems`` call."""
    if err.response.get("Error", {}).get("Code") != "TransactionCanceledException":
        return []
    reasons = err.response.get("CancellationReasons") or []
    return [reason.get("Code", "None") for reason in reasons]


class RoomRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    def add_room(self, room: Room):
        room_item = {
            "pk": f"ROOM#{room.room_id}",
            "sk": "DETAILS",
            "category": room.category.value,
            "price_per_night": Decimal(str(room.price_per_night)),
            "capacity": room.capacity,
            "amenities": list(room.amenities),
            "occupancy": room.occupancy.value,
            "cleanliness": room.cleanliness.value,
        }
        if room.floor is not None:
            room_item["floor"] = room.floor
        category_item = {
            "pk": f"CATEGORY#{room.category.value}",
            "sk": f"ROOM#{room.room_id}",
        }
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": room_item,
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": category_item,
                        }
                    },
                ]
            )
        except ClientError as err:
            logger.error(f"Error creating room {room.room_id}: {err}")
            raise

    def get_room_by_id(self, room_id: str) -> Optional[Room]:
        try:
            response = self.table.get_item(
                Key={"pk": f"ROOM#{room_id}", "sk": "DETAILS"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving room by id {room_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(room_id, item)

    def get_rooms_ids_by_category(self, category: Category) -> List[str]:
        try:
            response = self.table.query(
                KeyConditionExpression=(
                    Key("pk").eq(f"CATEGORY#{category.value}")
                    & Key("sk").begins_with("ROOM#")
                )
            )
        except ClientError as err:
            logger.error(f"Error retrieving {category.value} rooms: {err}")
            raise
        return [item["sk"].split("ROOM#", 1)[1] for item in response.get("Items", [])]

    def reserve_update(self, room_id: str, booking_id: str) -> dict:
        """Compare-and-swap VACANT -> OCCUPIED as a transaction item."""
        return {
            "Update": {
                "TableName": self.table.name,
                "Key": {"pk": f"ROOM#{room_id}", "sk": "DETAILS"},
                "UpdateExpression": (
                    "SET #occupancy = :occupied, #held_by = :booking_id, "
                    "#version = if_not_exists(#version, :zero) + :one"
                ),
                "ConditionExpression": (
                    "attribute_exists(pk) AND #occupancy = :vacant "
                    "AND #cleanliness <> :maintenance"
                ),
                "ExpressionAttributeNames": {
                    "#occupancy": "occupancy",
                    "#cleanliness": "cleanliness",
                    "#held_by": "held_by",
                    "#version": "version",
                },
                "ExpressionAttributeValues": {
                    ":occupied": Occupancy.OCCUPIED.value,
                    ":vacant": Occupancy.VACANT.value,
                    ":maintenance": Cleanliness.MAINTENANCE.value,
                    ":booking_id": booking_id,
                    ":zero": 0,
                    ":one": 1,
                },
            }
        }

    def transact(self, items: List[dict]):
        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as err:
            logger.error(f"Room transaction failed: {err}")
            raise

    def release(self, room_id: str, booking_id: str, cleanliness: Cleanliness = None):
        """Set the room VACANT if it is free or still held by ``booking_id``."""
        update = "SET #occupancy = :vacant REMOVE #held_by"
        values = {
            ":vacant": Occupancy.VACANT.value,
            ":booking_id": booking_id,
        }
        names = {"#occupancy": "occupancy", "#held_by": "held_by"}
        if cleanliness is not None:
            update = "SET #occupancy = :vacant, #cleanliness = :cleanliness REMOVE #held_by"
            values[":cleanliness"] = cleanliness.value
            names["#cleanliness"] = "cleanliness"

        self.table.update_item(
            Key={"pk": f"ROOM#{room_id}", "sk": "DETAILS"},
            UpdateExpression=update,
            ConditionExpression=(
                "attribute_exists(pk) AND "
                "(attribute_not_exists(#held_by) OR #held_by = :booking_id)"
            ),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
        )

    def update_cleanliness(
        self, room_id: str, cleanliness: Cleanliness, require_vacant: bool = False
    ):
        condition = "attribute_exists(pk)"
        values = {":value": cleanliness.value}
        names = {"#attribute": "cleanliness"}
        if require_vacant:
            condition += " AND #occupancy = :vacant"
            values[":vacant"] = Occupancy.VACANT.value
            names["#occupancy"] = "occupancy"
        try:
            self.table.update_item(
                Key={"pk": f"ROOM#{room_id}", "sk": "DETAILS"},
                UpdateExpression="SET #attribute=:value",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ConditionExpression=condition,
            )
        except ClientError as err:
            if is_conditional_failure(err) and not require_vacant:
                raise NotFoundException("room", room_id, 404)
            if not is_conditional_failure(err):
                logger.error(f"Error updating room {room_id} cleanliness: {err}")
            raise

    @staticmethod
    def _to_domain(room_id: str, item: dict) -> Room:
        floor = item.get("floor")
        return Room(
            room_id=room_id,
            category=Category(item["category"]),
            price_per_night=Decimal(str(item["price_per_night"])),
            capacity=int(item.get("capacity", 1)),
            amenities=list(item.get("amenities", [])),
            floor=int(floor) if floor is not None else None,
            occupancy=Occupancy(item.get("occupancy", Occupancy.VACANT.value)),
            cleanliness=Cleanliness(item.get("cleanliness", Cleanliness.CLEAN.value)),
            held_by=item.get("held_by"),
        )
