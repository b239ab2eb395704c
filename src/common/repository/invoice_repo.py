from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Optional, List
from common.models.invoice import Invoice, InvoiceStatus, LineItem, PaymentMethod
from common.repository.room_repo import cancellation_codes, is_conditional_failure
from common.utils.custom_exceptions import InvoiceAlreadySettled
from common.utils.datetime_normaliser import from_iso_string, to_iso_string

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)


class InvoiceRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    @staticmethod
    def _line_items(items: List[LineItem]) -> List[dict]:
        return [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": Decimal(str(item.unit_price)),
                "total": item.total,
                "is_food": item.is_food,
            }
            for item in items
        ]

    @staticmethod
    def _totals(invoice: Invoice) -> dict:
        return {
            ":subtotal": invoice.subtotal,
            ":tax": invoice.tax,
            ":total": invoice.total_amount,
        }

    def create_invoice(self, invoice: Invoice) -> bool:
        """Create the invoice and claim its booking; False if the booking has one."""
        invoice_item = {
            "pk": f"INVOICE#{invoice.invoice_id}",
            "sk": "DETAILS",
            "booking_id": invoice.booking_id,
            "user_id": invoice.user_id,
            "room_id": invoice.room_id,
            "invoice_status": invoice.status.value,
            "line_items": self._line_items(invoice.line_items),
            "subtotal": invoice.subtotal,
            "tax": invoice.tax,
            "total_amount": invoice.total_amount,
            "created_at": to_iso_string(invoice.created_at),
        }
        pointer_item = {
            "pk": f"BOOKING#{invoice.booking_id}",
            "sk": "INVOICE",
            "invoice_id": invoice.invoice_id,
        }
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": invoice_item,
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": pointer_item,
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                ]
            )
        except ClientError as err:
            if "ConditionalCheckFailed" in cancellation_codes(err):
                logger.info(f"Invoice for booking {invoice.booking_id} already exists")
                return False
            logger.error(f"Error creating invoice for booking {invoice.booking_id}: {err}")
            raise
        return True

    def get_invoice_by_id(self, invoice_id: str) -> Optional[Invoice]:
        try:
            response = self.table.get_item(
                Key={"pk": f"INVOICE#{invoice_id}", "sk": "DETAILS"},
                ConsistentRead=True,
            )
        except ClientError as err:
            logger.error(f"Error retrieving invoice {invoice_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(invoice_id, item)

    def get_invoice_for_booking(self, booking_id: str) -> Optional[Invoice]:
        try:
            response = self.table.get_item(
                Key={"pk": f"BOOKING#{booking_id}", "sk": "INVOICE"},
                ConsistentRead=True,
            )
        except ClientError as err:
            logger.error(f"Error retrieving invoice pointer for booking {booking_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self.get_invoice_by_id(item["invoice_id"])

    def save_line_items(self, invoice: Invoice):
        try:
            self.table.update_item(
                Key={"pk": f"INVOICE#{invoice.invoice_id}", "sk": "DETAILS"},
                UpdateExpression=(
                    "SET line_items = :items, subtotal = :subtotal, "
                    "tax = :tax, total_amount = :total"
                ),
                ConditionExpression="invoice_status = :open",
                ExpressionAttributeValues={
                    ":items": self._line_items(invoice.line_items),
                    ":open": InvoiceStatus.OPEN.value,
                    **self._totals(invoice),
                },
            )
        except ClientError as err:
            if is_conditional_failure(err):
                raise InvoiceAlreadySettled(f"invoice {invoice.invoice_id} is closed")
            logger.error(f"Error updating invoice {invoice.invoice_id}: {err}")
            raise

    def mark_paid(self, invoice: Invoice):
        try:
            self.table.update_item(
                Key={"pk": f"INVOICE#{invoice.invoice_id}", "sk": "DETAILS"},
                UpdateExpression=(
                    "SET invoice_status = :paid, paid_at = :paid_at, "
                    "payment_method = :method, line_items = :items, "
                    "subtotal = :subtotal, tax = :tax, total_amount = :total"
                ),
                ConditionExpression="invoice_status = :open",
                ExpressionAttributeValues={
                    ":paid": InvoiceStatus.PAID.value,
                    ":open": InvoiceStatus.OPEN.value,
                    ":paid_at": to_iso_string(invoice.paid_at),
                    ":method": invoice.payment_method.value,
                    ":items": self._line_items(invoice.line_items),
                    **self._totals(invoice),
                },
            )
        except ClientError as err:
            if is_conditional_failure(err):
                raise InvoiceAlreadySettled(f"invoice {invoice.invoice_id} is already paid")
            logger.error(f"Error settling invoice {invoice.invoice_id}: {err}")
            raise

    def void_invoice(self, invoice: Invoice) -> bool:
        """Close an OPEN invoice without payment; False if it was no longer open."""
        try:
            self.table.update_item(
                Key={"pk": f"INVOICE#{invoice.invoice_id}", "sk": "DETAILS"},
                UpdateExpression="SET invoice_status = :void",
                ConditionExpression="invoice_status = :open",
                ExpressionAttributeValues={
                    ":void": InvoiceStatus.VOID.value,
                    ":open": InvoiceStatus.OPEN.value,
                },
            )
        except ClientError as err:
            if is_conditional_failure(err):
                return False
            logger.error(f"Error voiding invoice {invoice.invoice_id}: {err}")
            raise
        invoice.status = InvoiceStatus.VOID
        return True

    def list_invoices_by_status(self, status: InvoiceStatus) -> List[Invoice]:
        filter_expression = (
            Attr("pk").begins_with("INVOICE#")
            & Attr("sk").eq("DETAILS")
            & Attr("invoice_status").eq(status.value)
        )
        invoices = []
        try:
            resp = self.table.scan(FilterExpression=filter_expression)
            invoices.extend(self._from_item(item) for item in resp.get("Items", []))
            while "LastEvaluatedKey" in resp:
                resp = self.table.scan(
                    FilterExpression=filter_expression,
                    ExclusiveStartKey=resp["LastEvaluatedKey"],
                )
                invoices.extend(self._from_item(item) for item in resp.get("Items", []))
        except ClientError as err:
            logger.error(f"Error scanning invoices with status {status.value}: {err}")
            raise
        return invoices

    @classmethod
    def _from_item(cls, item: dict) -> Invoice:
        return cls._to_domain(item["pk"].split("#", 1)[1], item)

    @staticmethod
    def _to_domain(invoice_id: str, item: dict) -> Invoice:
        paid_at = item.get("paid_at")
        method = item.get("payment_method")
        return Invoice(
            invoice_id=invoice_id,
            booking_id=item["booking_id"],
            user_id=item["user_id"],
            room_id=item["room_id"],
            line_items=[
                LineItem(
                    description=line["description"],
                    quantity=int(line["quantity"]),
                    unit_price=Decimal(str(line["unit_price"])),
                    is_food=bool(line.get("is_food", False)),
                )
                for line in item.get("line_items", [])
            ],
            status=InvoiceStatus(item["invoice_status"]),
            paid_at=from_iso_string(paid_at) if paid_at else None,
            payment_method=PaymentMethod(method) if method else None,
            created_at=from_iso_string(item["created_at"]),
        )
