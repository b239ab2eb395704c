import logging
from datetime import datetime
from decimal import Decimal
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, List, Optional
from uuid import uuid4

from botocore.exceptions import ClientError

from common.models.bookings import BookingStatus
from common.models.food_orders import FoodOrder
from common.models.invoice import Bill, Invoice, InvoiceStatus, LineItem, PaymentMethod
from common.models.users import STAFF_ROLES, UserRole
from common.repository.booking_repo import BookingRepository
from common.repository.food_order_repo import FoodOrderRepository
from common.repository.invoice_repo import InvoiceRepository
from common.services.booking_service import BookingService
from common.services.events import EventPublisher, LoggingEventPublisher
from common.utils.custom_exceptions import (
    Forbidden,
    InvalidTransition,
    InvoiceAlreadySettled,
    NotFoundException,
)
from common.utils.datetime_normaliser import utc_now
from common.utils.money import format_amount, quantize

logger = logging.getLogger(__name__)

# COMPLETED covers stays the sweep closed before the guest paid
BILLABLE_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED})
HISTORY_LIMIT = 50


def food_line_items(orders: List[FoodOrder]) -> List[LineItem]:
    return [
        LineItem(
            description=f"Food: {item.name}",
            quantity=item.quantity,
            unit_price=quantize(item.price),
            is_food=True,
        )
        for order in orders
        for item in order.items
    ]


class InvoiceService:
    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        booking_repo: BookingRepository,
        food_orders: FoodOrderRepository,
        booking_service: Optional[BookingService] = None,
        publisher: Optional[EventPublisher] = None,
        ses=None,
        sender: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.invoice_repo = invoice_repo
        self.booking_repo = booking_repo
        self.food_orders = food_orders
        self.booking_service = booking_service
        self.publisher = publisher or LoggingEventPublisher()
        self.ses = ses
        self.sender = sender
        self.clock = clock

    def get_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.invoice_repo.get_invoice_by_id(invoice_id)
        if invoice is None:
            raise NotFoundException("invoice", invoice_id, 404)
        return invoice

    def get_or_create(self, booking_id: str) -> Invoice:
        """Return the booking's invoice, opening it with the room charge on first use."""
        invoice = self.invoice_repo.get_invoice_for_booking(booking_id)
        if invoice is not None:
            return invoice

        booking = self.booking_repo.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("booking", booking_id, 404)
        if booking.status not in BILLABLE_STATUSES:
            raise InvalidTransition(f"no invoice for a {booking.status.value} booking")

        nights = booking.nights
        invoice = Invoice(
            invoice_id=str(uuid4()),
            booking_id=booking.booking_id,
            user_id=booking.user_id,
            room_id=booking.room_id,
            line_items=[
                LineItem(
                    description=f"Room Stay (Room {booking.room_id}) - {nights} night(s)",
                    quantity=nights,
                    # nightly rate locked in at booking time
                    unit_price=quantize(booking.total_price / nights),
                )
            ],
            created_at=self.clock(),
        )
        if self.invoice_repo.create_invoice(invoice):
            logger.info(f"Invoice {invoice.invoice_id} opened for booking {booking_id}")
            return invoice

        existing = self.invoice_repo.get_invoice_for_booking(booking_id)
        if existing is None:
            raise InvalidTransition(f"could not open invoice for booking {booking_id}")
        return existing

    def current_bill(
        self,
        booking_id: str,
        requester_id: Optional[str] = None,
        role: Optional[UserRole] = None,
    ) -> Bill:
        """Running bill for a booking.

        When ``requester_id`` is given the caller must own the booking or be
        staff; this is checked before an invoice is opened.
        """
        if requester_id is not None:
            booking = self.booking_repo.get_booking_by_id(booking_id)
            if booking is None:
                raise NotFoundException("booking", booking_id, 404)
            if role not in STAFF_ROLES and booking.user_id != requester_id:
                raise Forbidden(f"booking {booking_id} belongs to another guest")
        return self._bill(self.get_or_create(booking_id))

    def active_bills(self) -> List[Bill]:
        """Running bills of every guest currently in house."""
        bookings = self.booking_repo.list_bookings_by_status([BookingStatus.CONFIRMED])
        bills = [self._bill(self.get_or_create(b.booking_id)) for b in bookings]
        return sorted(bills, key=lambda bill: bill.invoice.room_id)

    def invoice_history(self, limit: int = HISTORY_LIMIT) -> List[Invoice]:
        paid = self.invoice_repo.list_invoices_by_status(InvoiceStatus.PAID)
        paid.sort(key=lambda invoice: invoice.paid_at or invoice.created_at, reverse=True)
        return paid[:limit]

    def current_bill_for_invoice(self, invoice_id: str) -> Bill:
        return self._bill(self.get_invoice(invoice_id))

    def add_charge(
        self, invoice_id: str, description: str, quantity: int, unit_price: Decimal
    ) -> Invoice:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        if unit_price < 0:
            raise ValueError("unit price cannot be negative")

        invoice = self.get_invoice(invoice_id)
        if not invoice.is_open:
            raise InvoiceAlreadySettled(f"invoice {invoice_id} is {invoice.status.value}")
        invoice.line_items.append(
            LineItem(description=description, quantity=quantity, unit_price=quantize(unit_price))
        )
        self.invoice_repo.save_line_items(invoice)
        logger.info(f"Added {quantity} x {description} to invoice {invoice_id}")
        return invoice

    def settle(self, invoice_id: str, method: PaymentMethod) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if not invoice.is_open:
            raise InvoiceAlreadySettled(f"invoice {invoice_id} is {invoice.status.value}")

        orders = self.food_orders.find_pending_charges_for_room(invoice.room_id)
        invoice.line_items.extend(food_line_items(orders))
        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = self.clock()
        invoice.payment_method = method
        self.invoice_repo.mark_paid(invoice)

        if orders:
            self.food_orders.mark_charges_settled(
                invoice.room_id, [order.order_id for order in orders]
            )
        logger.info(
            f"Invoice {invoice_id} settled by {method.value}: total {invoice.total_amount}"
        )
        self.publisher.publish(
            "invoice.settled",
            {
                "invoice_id": invoice_id,
                "booking_id": invoice.booking_id,
                "total_amount": str(invoice.total_amount),
            },
        )
        return invoice

    def checkout(
        self, invoice_id: str, method: PaymentMethod, receipt_email: Optional[str] = None
    ) -> Invoice:
        """Settle the bill, close the stay, then mail a receipt if we can.

        A stay the sweep already force-completed only has its bill settled.
        """
        booking = self.booking_service.get_booking(self.get_invoice(invoice_id).booking_id)
        if booking.status not in BILLABLE_STATUSES:
            raise InvalidTransition(f"cannot check out a {booking.status.value} booking")
        invoice = self.settle(invoice_id, method)
        if booking.status == BookingStatus.CONFIRMED:
            self.booking_service.complete_stay(invoice.booking_id)
        if receipt_email:
            self.send_receipt(invoice, receipt_email)
        return invoice

    def send_receipt(self, invoice: Invoice, recipient: str) -> bool:
        if not (self.ses and self.sender):
            logger.info(f"Receipt for invoice {invoice.invoice_id} not sent: no sender configured")
            return False

        lines = "\n".join(
            f"    {item.description}: {item.quantity} x {format_amount(item.unit_price)}"
            f" = {format_amount(item.total)}"
            for item in invoice.line_items
        )
        body = f"""
            Hello,

            Here is your receipt:

            Invoice: {invoice.invoice_id}
            Booking ID: {invoice.booking_id}
            Room No: {invoice.room_id}

{lines}

            Subtotal: {format_amount(invoice.subtotal)}
            Tax: {format_amount(invoice.tax)}
            Total Paid: {format_amount(invoice.total_amount)}

            Thank you for staying with us.
            """

        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = f"Receipt for Booking {invoice.booking_id}"
        msg.attach(MIMEText(body, "plain"))

        try:
            self.ses.send_raw_email(
                Source=self.sender,
                Destinations=[recipient],
                RawMessage={"Data": msg.as_string()},
            )
        except ClientError as err:
            logger.error(f"Could not send receipt for invoice {invoice.invoice_id}: {err}")
            return False
        return True

    def _bill(self, invoice: Invoice) -> Bill:
        if not invoice.is_open:
            return Bill(invoice=invoice)
        orders = self.food_orders.find_pending_charges_for_room(invoice.room_id)
        return Bill(invoice=invoice, food_items=food_line_items(orders))
