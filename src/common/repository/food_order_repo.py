from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Iterable, List, Optional
from boto3.dynamodb.conditions import Attr, Key
from common.models.food_orders import FoodOrder, FoodOrderItem, FoodPaymentStatus
from common.repository.room_repo import is_conditional_failure

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
else:
    Table = object


logger = logging.getLogger(__name__)


class FoodOrderRepository:
    """Read/settle access to room-service orders owned by the restaurant side."""

    def __init__(self, table: Table):
        self.table = table

    def find_pending_charges_for_room(self, room_id: str) -> List[FoodOrder]:
        key_condition = Key("pk").eq(f"ROOMORDER#{room_id}") & Key("sk").begins_with("ORDER#")
        pending = Attr("payment_status").eq(FoodPaymentStatus.PENDING.value)
        orders = []
        try:
            resp = self.table.query(
                KeyConditionExpression=key_condition, FilterExpression=pending
            )
            orders.extend(self._to_domain(room_id, item) for item in resp.get("Items", []))
            while "LastEvaluatedKey" in resp:
                resp = self.table.query(
                    KeyConditionExpression=key_condition,
                    FilterExpression=pending,
                    ExclusiveStartKey=resp["LastEvaluatedKey"],
                )
                orders.extend(self._to_domain(room_id, item) for item in resp.get("Items", []))
        except ClientError as err:
            logger.error(f"Error retrieving pending food orders for room {room_id}: {err}")
            raise
        return orders

    def mark_charges_settled(self, room_id: str, order_ids: Optional[Iterable[str]] = None) -> int:
        """Flip pending orders to COMPLETED; only ``order_ids`` when given."""
        if order_ids is None:
            order_ids = [order.order_id for order in self.find_pending_charges_for_room(room_id)]
        settled = 0
        for order_id in order_ids:
            try:
                self.table.update_item(
                    Key={"pk": f"ROOMORDER#{room_id}", "sk": f"ORDER#{order_id}"},
                    UpdateExpression="SET payment_status = :completed",
                    ConditionExpression="payment_status = :pending",
                    ExpressionAttributeValues={
                        ":completed": FoodPaymentStatus.COMPLETED.value,
                        ":pending": FoodPaymentStatus.PENDING.value,
                    },
                )
                settled += 1
            except ClientError as err:
                if is_conditional_failure(err):
                    continue
                logger.error(f"Error settling food order {order_id}: {err}")
                raise
        return settled

    @staticmethod
    def _to_domain(room_id: str, item: dict) -> FoodOrder:
        return FoodOrder(
            order_id=item["sk"].removeprefix("ORDER#"),
            room_id=room_id,
            items=[
                FoodOrderItem(
                    name=line["name"],
                    price=Decimal(str(line["price"])),
                    quantity=int(line.get("quantity", 1)),
                )
                for line in item.get("items", [])
            ],
            payment_status=FoodPaymentStatus(item["payment_status"]),
        )
