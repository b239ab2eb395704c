from botocore.exceptions import ClientError
import logging
from typing import Iterable, Optional, List
from boto3.dynamodb.conditions import Attr, Key
from common.models.bookings import Booking, BookingStatus, PaymentStatus
from common.repository.room_repo import cancellation_codes
from common.utils.datetime_normaliser import from_iso_string, to_iso_string, utc_now
from decimal import Decimal
from datetime import date
from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)


class BookingRepository:
    """Bookings are written to three keys that must stay in step:

    * ``BOOKING#<id> / DETAILS``: the authoritative record
    * ``USER#<uid> / BOOKING#<id>``: guest history
    * ``ROOM#<rid> / BOOKING#<checkin>#<id>``: interval index for overlap scans

    plus ``PAYREF#<ref> / BOOKING`` once a payment attempt exists.
    """

    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    @staticmethod
    def _attributes(booking: Booking) -> dict:
        item = {
            "entity": "BOOKING",
            "booking_id": booking.booking_id,
            "user_id": booking.user_id,
            "room_id": booking.room_id,
            "check_in": booking.checkin.isoformat(),
            "check_out": booking.checkout.isoformat(),
            "guests": booking.guests,
            "total_price": Decimal(str(booking.total_price)),
            "booking_status": booking.status.value,
            "payment_status": booking.payment_status.value,
            "created_at": to_iso_string(booking.created_at),
        }
        if booking.payment_ref:
            item["payment_ref"] = booking.payment_ref
        return item

    @staticmethod
    def _keys(booking: Booking) -> List[dict]:
        return [
            {"pk": f"BOOKING#{booking.booking_id}", "sk": "DETAILS"},
            {"pk": f"USER#{booking.user_id}", "sk": f"BOOKING#{booking.booking_id}"},
            {
                "pk": f"ROOM#{booking.room_id}",
                "sk": f"BOOKING#{booking.checkin.isoformat()}#{booking.booking_id}",
            },
        ]

    def booking_put_items(self, booking: Booking) -> List[dict]:
        """Transaction items that create ``booking`` under all of its keys."""
        attributes = self._attributes(booking)
        details, user_copy, room_copy = self._keys(booking)
        return [
            {
                "Put": {
                    "TableName": self.table.name,
                    "Item": {**details, **attributes},
                    "ConditionExpression": "attribute_not_exists(pk)",
                }
            },
            {
                "Put": {
                    "TableName": self.table.name,
                    "Item": {**user_copy, **attributes},
                }
            },
            {
                "Put": {
                    "TableName": self.table.name,
                    "Item": {**room_copy, **attributes},
                }
            },
        ]

    def get_booking_by_id(self, booking_id: str) -> Optional[Booking]:
        try:
            response = self.table.get_item(
                Key={"pk": f"BOOKING#{booking_id}", "sk": "DETAILS"},
                ConsistentRead=True,
            )
        except ClientError as err:
            logger.error(f"Error retrieving booking {booking_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(item)

    def get_booking_by_payment_ref(self, reference: str) -> Optional[Booking]:
        try:
            response = self.table.get_item(
                Key={"pk": f"PAYREF#{reference}", "sk": "BOOKING"}
            )
        except ClientError as err:
            logger.error(f"Error resolving payment reference {reference}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self.get_booking_by_id(item["booking_id"])

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        return self._query_all(
            Key("pk").eq(f"USER#{user_id}") & Key("sk").begins_with("BOOKING#"),
            f"user {user_id} bookings",
        )

    def get_room_bookings(self, room_id: str) -> List[Booking]:
        return self._query_all(
            Key("pk").eq(f"ROOM#{room_id}") & Key("sk").begins_with("BOOKING#"),
            f"room {room_id} bookings",
        )

    def list_bookings_by_status(self, statuses: Iterable[BookingStatus]) -> List[Booking]:
        values = [status.value for status in statuses]
        filter_expression = (
            Attr("sk").eq("DETAILS")
            & Attr("entity").eq("BOOKING")
            & Attr("booking_status").is_in(values)
        )
        bookings = []
        try:
            resp = self.table.scan(FilterExpression=filter_expression)
            bookings.extend(self._to_domain(item) for item in resp.get("Items", []))
            while "LastEvaluatedKey" in resp:
                resp = self.table.scan(
                    FilterExpression=filter_expression,
                    ExclusiveStartKey=resp["LastEvaluatedKey"],
                )
                bookings.extend(self._to_domain(item) for item in resp.get("Items", []))
        except ClientError as err:
            logger.error(f"Error scanning bookings with status {values}: {err}")
            raise
        return bookings

    def transition(
        self,
        booking: Booking,
        status: BookingStatus,
        payment_status: PaymentStatus,
        expected_status: BookingStatus,
        expected_payment_status: Optional[PaymentStatus] = None,
    ) -> bool:
        """Move ``booking`` to a new state if it is still in the expected one.

        Returns False when another writer got there first; the caller decides
        whether that is a no-op or an error.
        """
        condition = "attribute_exists(pk) AND #booking_status = :expected"
        values = {
            ":status": status.value,
            ":payment_status": payment_status.value,
            ":expected": expected_status.value,
            ":updated_at": to_iso_string(utc_now()),
        }
        if expected_payment_status is not None:
            condition += " AND #payment_status = :expected_payment"
            values[":expected_payment"] = expected_payment_status.value

        updates = []
        for index, key in enumerate(self._keys(booking)):
            update = {
                "TableName": self.table.name,
                "Key": key,
                "UpdateExpression": (
                    "SET #booking_status = :status, #payment_status = :payment_status, "
                    "#updated_at = :updated_at"
                ),
                "ExpressionAttributeNames": {
                    "#booking_status": "booking_status",
                    "#payment_status": "payment_status",
                    "#updated_at": "updated_at",
                },
                "ExpressionAttributeValues": dict(values),
            }
            if index == 0:
                update["ConditionExpression"] = condition
            else:
                # copies only carry the attributes they use
                update["ExpressionAttributeValues"] = {
                    k: v for k, v in values.items() if not k.startswith(":expected")
                }
            updates.append({"Update": update})

        try:
            self.client.transact_write_items(TransactItems=updates)
        except ClientError as err:
            codes = cancellation_codes(err)
            if codes and codes[0] == "ConditionalCheckFailed":
                logger.info(
                    f"Booking {booking.booking_id} no longer {expected_status.value}; "
                    f"skipped transition to {status.value}"
                )
                return False
            logger.error(f"Error updating booking {booking.booking_id} status: {err}")
            raise

        booking.status = status
        booking.payment_status = payment_status
        return True

    def set_payment_status(
        self, booking: Booking, payment_status: PaymentStatus, expected: PaymentStatus
    ) -> bool:
        return self.transition(
            booking,
            status=booking.status,
            payment_status=payment_status,
            expected_status=booking.status,
            expected_payment_status=expected,
        )

    def set_payment_ref(self, booking: Booking, reference: str) -> bool:
        """Record the active payment attempt; False if one already exists."""
        items = [
            {
                "Update": {
                    "TableName": self.table.name,
                    "Key": key,
                    "UpdateExpression": "SET #payment_ref = :ref",
                    "ExpressionAttributeNames": {"#payment_ref": "payment_ref"},
                    "ExpressionAttributeValues": {":ref": reference},
                }
            }
            for key in self._keys(booking)
        ]
        guard = items[0]["Update"]
        guard["ConditionExpression"] = (
            "attribute_exists(pk) AND attribute_not_exists(#payment_ref) "
            "AND #payment_status = :pending"
        )
        guard["ExpressionAttributeNames"]["#payment_status"] = "payment_status"
        guard["ExpressionAttributeValues"][":pending"] = PaymentStatus.PENDING.value
        items.append(
            {
                "Put": {
                    "TableName": self.table.name,
                    "Item": {
                        "pk": f"PAYREF#{reference}",
                        "sk": "BOOKING",
                        "booking_id": booking.booking_id,
                    },
                    "ConditionExpression": "attribute_not_exists(pk)",
                }
            }
        )
        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as err:
            if "ConditionalCheckFailed" in cancellation_codes(err):
                return False
            logger.error(f"Error recording payment reference for {booking.booking_id}: {err}")
            raise
        booking.payment_ref = reference
        return True

    def clear_payment_ref(self, booking: Booking, reference: str):
        items = [
            {
                "Update": {
                    "TableName": self.table.name,
                    "Key": key,
                    "UpdateExpression": "REMOVE #payment_ref",
                    "ExpressionAttributeNames": {"#payment_ref": "payment_ref"},
                }
            }
            for key in self._keys(booking)
        ]
        items[0]["Update"]["ConditionExpression"] = "#payment_ref = :ref"
        items[0]["Update"]["ExpressionAttributeValues"] = {":ref": reference}
        items.append(
            {
                "Delete": {
                    "TableName": self.table.name,
                    "Key": {"pk": f"PAYREF#{reference}", "sk": "BOOKING"},
                }
            }
        )
        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as err:
            logger.error(f"Error clearing payment reference {reference}: {err}")
            raise
        booking.payment_ref = None

    def update_dates(
        self, booking: Booking, checkin: date, checkout: date, total_price: Decimal
    ) -> bool:
        """Move a pending, unpaid booking to new dates; False if it changed state."""
        old_room_key = self._keys(booking)[2]
        moved = replace(booking, checkin=checkin, checkout=checkout, total_price=total_price)
        details, user_copy, new_room_key = self._keys(moved)
        values = {
            ":check_in": checkin.isoformat(),
            ":check_out": checkout.isoformat(),
            ":total": Decimal(str(total_price)),
            ":updated_at": to_iso_string(utc_now()),
        }
        names = {
            "#check_in": "check_in",
            "#check_out": "check_out",
            "#total": "total_price",
            "#updated_at": "updated_at",
        }
        expression = (
            "SET #check_in = :check_in, #check_out = :check_out, "
            "#total = :total, #updated_at = :updated_at"
        )
        items = [
            {
                "Update": {
                    "TableName": self.table.name,
                    "Key": details,
                    "UpdateExpression": expression,
                    "ConditionExpression": (
                        "#booking_status = :pending AND #payment_status = :pending "
                        "AND attribute_not_exists(#payment_ref)"
                    ),
                    "ExpressionAttributeNames": {
                        **names,
                        "#booking_status": "booking_status",
                        "#payment_status": "payment_status",
                        "#payment_ref": "payment_ref",
                    },
                    "ExpressionAttributeValues": {
                        **values,
                        ":pending": BookingStatus.PENDING.value,
                    },
                }
            },
            {
                "Update": {
                    "TableName": self.table.name,
                    "Key": user_copy,
                    "UpdateExpression": expression,
                    "ExpressionAttributeNames": names,
                    "ExpressionAttributeValues": values,
                }
            },
        ]
        if new_room_key != old_room_key:
            items.append({"Delete": {"TableName": self.table.name, "Key": old_room_key}})
            items.append(
                {
                    "Put": {
                        "TableName": self.table.name,
                        "Item": {**new_room_key, **self._attributes(moved)},
                    }
                }
            )
        else:
            items.append(
                {
                    "Update": {
                        "TableName": self.table.name,
                        "Key": old_room_key,
                        "UpdateExpression": expression,
                        "ExpressionAttributeNames": names,
                        "ExpressionAttributeValues": values,
                    }
                }
            )

        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as err:
            if "ConditionalCheckFailed" in cancellation_codes(err):
                return False
            logger.error(f"Error rescheduling booking {booking.booking_id}: {err}")
            raise

        booking.checkin = checkin
        booking.checkout = checkout
        booking.total_price = total_price
        return True

    def _query_all(self, key_condition, label: str) -> List[Booking]:
        bookings = []
        try:
            resp = self.table.query(KeyConditionExpression=key_condition)
            bookings.extend(self._to_domain(item) for item in resp.get("Items", []))
            while "LastEvaluatedKey" in resp:
                resp = self.table.query(
                    KeyConditionExpression=key_condition,
                    ExclusiveStartKey=resp["LastEvaluatedKey"],
                )
                bookings.extend(self._to_domain(item) for item in resp.get("Items", []))
        except ClientError as err:
            logger.error(f"Error retrieving {label}: {err}")
            raise
        return bookings

    @staticmethod
    def _to_domain(item: dict) -> Booking:
        updated_at = item.get("updated_at")
        return Booking(
            booking_id=item["booking_id"],
            user_id=item["user_id"],
            room_id=item["room_id"],
            checkin=date.fromisoformat(item["check_in"]),
            checkout=date.fromisoformat(item["check_out"]),
            guests=int(item["guests"]),
            total_price=Decimal(str(item["total_price"])),
            status=BookingStatus(item["booking_status"]),
            payment_status=PaymentStatus(item["payment_status"]),
            payment_ref=item.get("payment_ref"),
            created_at=from_iso_string(item["created_at"]),
            updated_at=from_iso_string(updated_at) if updated_at else None,
        )
