import unittest
from unittest.mock import MagicMock
from datetime import datetime, timezone
from decimal import Decimal
from botocore.exceptions import ClientError

from common.repository.invoice_repo import InvoiceRepository
from common.models.invoice import Invoice, InvoiceStatus, LineItem, PaymentMethod
from common.utils.custom_exceptions import InvoiceAlreadySettled


NOW = datetime(2024, 6, 4, 10, 0, tzinfo=timezone.utc)


class TestInvoiceRepository(unittest.TestCase):

    def setUp(self):
        self.table = MagicMock()
        self.table.name = "hotel"
        self.client = MagicMock()

        self.table.meta.client = self.client
        self.repo = InvoiceRepository(self.table, self.client)

        self.invoice = Invoice(
            invoice_id="i1",
            booking_id="b1",
            user_id="u1",
            room_id="101",
            line_items=[LineItem("Room Stay (Room 101) - 3 night(s)", 3, Decimal("1000.00"))],
            created_at=NOW,
        )

    def test_create_invoice_claims_booking(self):
        self.assertTrue(self.repo.create_invoice(self.invoice))

        _, kwargs = self.client.transact_write_items.call_args
        invoice_put, pointer_put = [i["Put"] for i in kwargs["TransactItems"]]
        self.assertEqual(invoice_put["Item"]["pk"], "INVOICE#i1")
        self.assertEqual(invoice_put["Item"]["total_amount"], Decimal("3450.00"))
        self.assertEqual(invoice_put["Item"]["line_items"][0]["total"], Decimal("3000.00"))
        self.assertEqual(pointer_put["Item"], {"pk": "BOOKING#b1", "sk": "INVOICE", "invoice_id": "i1"})
        self.assertEqual(pointer_put["ConditionExpression"], "attribute_not_exists(pk)")

    def test_create_invoice_when_booking_already_has_one(self):
        self.client.transact_write_items.side_effect = ClientError(
            error_response={
                "Error": {"Code": "TransactionCanceledException"},
                "CancellationReasons": [{"Code": "None"}, {"Code": "ConditionalCheckFailed"}],
            },
            operation_name="TransactWriteItems"
        )

        self.assertFalse(self.repo.create_invoice(self.invoice))

    def test_get_invoice_for_booking(self):
        self.table.get_item.side_effect = [
            {"Item": {"pk": "BOOKING#b1", "sk": "INVOICE", "invoice_id": "i1"}},
            {"Item": {
                "pk": "INVOICE#i1",
                "sk": "DETAILS",
                "booking_id": "b1",
                "user_id": "u1",
                "room_id": "101",
                "invoice_status": "PAID",
                "payment_method": "CASH",
                "paid_at": NOW.isoformat(),
                "created_at": NOW.isoformat(),
                "line_items": [
                    {"description": "Room", "quantity": Decimal("3"), "unit_price": Decimal("1000"), "is_food": False},
                    {"description": "Food: Tea", "quantity": Decimal("1"), "unit_price": Decimal("20"), "is_food": True},
                ],
            }},
        ]

        invoice = self.repo.get_invoice_for_booking("b1")

        self.assertEqual(invoice.invoice_id, "i1")
        self.assertEqual(invoice.status, InvoiceStatus.PAID)
        self.assertEqual(invoice.payment_method, PaymentMethod.CASH)
        self.assertEqual(invoice.subtotal, Decimal("3020.00"))
        self.assertTrue(invoice.line_items[1].is_food)

    def test_get_invoice_for_booking_without_invoice(self):
        self.table.get_item.return_value = {}

        self.assertIsNone(self.repo.get_invoice_for_booking("b1"))

    def test_mark_paid_is_conditional_on_open(self):
        self.invoice.status = InvoiceStatus.PAID
        self.invoice.paid_at = NOW
        self.invoice.payment_method = PaymentMethod.CHAPA

        self.repo.mark_paid(self.invoice)

        _, kwargs = self.table.update_item.call_args
        self.assertEqual(kwargs["ConditionExpression"], "invoice_status = :open")
        self.assertEqual(kwargs["ExpressionAttributeValues"][":method"], "CHAPA")
        self.assertEqual(kwargs["ExpressionAttributeValues"][":total"], Decimal("3450.00"))

    def test_mark_paid_twice_raises(self):
        self.invoice.paid_at = NOW
        self.invoice.payment_method = PaymentMethod.CASH
        self.table.update_item.side_effect = ClientError(
            error_response={"Error": {"Code": "ConditionalCheckFailedException"}},
            operation_name="UpdateItem"
        )

        with self.assertRaises(InvoiceAlreadySettled):
            self.repo.mark_paid(self.invoice)

    def test_save_line_items_on_closed_invoice(self):
        self.table.update_item.side_effect = ClientError(
            error_response={"Error": {"Code": "ConditionalCheckFailedException"}},
            operation_name="UpdateItem"
        )

        with self.assertRaises(InvoiceAlreadySettled):
            self.repo.save_line_items(self.invoice)

    def test_void_invoice_is_conditional_on_open(self):
        self.assertTrue(self.repo.void_invoice(self.invoice))

        _, kwargs = self.table.update_item.call_args
        self.assertEqual(kwargs["ConditionExpression"], "invoice_status = :open")
        self.assertEqual(kwargs["ExpressionAttributeValues"][":void"], "VOID")
        self.assertEqual(self.invoice.status, InvoiceStatus.VOID)

    def test_void_invoice_that_is_no_longer_open(self):
        self.table.update_item.side_effect = ClientError(
            error_response={"Error": {"Code": "ConditionalCheckFailedException"}},
            operation_name="UpdateItem"
        )

        self.assertFalse(self.repo.void_invoice(self.invoice))
        self.assertEqual(self.invoice.status, InvoiceStatus.OPEN)

    def test_list_invoices_by_status_pages_through_scan(self):
        item = {
            "pk": "INVOICE#i1",
            "sk": "DETAILS",
            "booking_id": "b1",
            "user_id": "u1",
            "room_id": "101",
            "invoice_status": "PAID",
            "payment_method": "CASH",
            "paid_at": NOW.isoformat(),
            "created_at": NOW.isoformat(),
            "line_items": [],
        }
        self.table.scan.side_effect = [
            {"Items": [item], "LastEvaluatedKey": {"pk": "INVOICE#i1", "sk": "DETAILS"}},
            {"Items": [dict(item, pk="INVOICE#i2", booking_id="b2")]},
        ]

        invoices = self.repo.list_invoices_by_status(InvoiceStatus.PAID)

        self.assertEqual([i.invoice_id for i in invoices], ["i1", "i2"])
        self.assertEqual(self.table.scan.call_count, 2)


if __name__ == "__main__":
    unittest.main()
