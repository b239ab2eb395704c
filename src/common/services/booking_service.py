import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional
from uuid import uuid4

from common.models.bookings import (
    Booking,
    BookingStatus,
    CancellationResult,
    PaymentStatus,
)
from common.models.invoice import DESK_PAYMENT_METHODS, InvoiceStatus
from common.models.payments import RefundOutcome
from common.models.rooms import Occupancy
from common.models.users import STAFF_ROLES, UserRole
from common.repository.booking_repo import BookingRepository
from common.repository.invoice_repo import InvoiceRepository
from common.schemas.bookings import BookingRequest
from common.services.availability import AvailabilityChecker, validate_range
from common.services.events import EventPublisher, LoggingEventPublisher
from common.services.room_ledger import RoomLedger
from common.services.schedule_service import SchedulerService
from common.utils.constants import HOLD_WINDOW_MINUTES, MAX_STAY, REFUND_RATIO
from common.utils.custom_exceptions import (
    Forbidden,
    InvalidDateRange,
    InvalidGuestCount,
    InvalidTransition,
    InvoiceNotSettled,
    NotFoundException,
    OverlapConflict,
    RoomUnavailable,
)
from common.utils.datetime_normaliser import utc_now
from common.utils.money import quantize

logger = logging.getLogger(__name__)

REFUND_WARNING = (
    "Your booking is cancelled. The refund could not be processed automatically "
    "and will be completed by our staff."
)


class BookingService:
    """Reservation state machine.

    PENDING -> CONFIRMED -> COMPLETED, with CANCELLED reachable from PENDING
    or CONFIRMED. Every transition is a conditional write on the current
    status, so duplicate or concurrent requests collapse to one change.
    """

    def __init__(
        self,
        booking_repo: BookingRepository,
        room_ledger: RoomLedger,
        availability: AvailabilityChecker,
        invoice_repo: InvoiceRepository,
        schedule_service: Optional[SchedulerService] = None,
        publisher: Optional[EventPublisher] = None,
        payments=None,
        hold_window: timedelta = timedelta(minutes=HOLD_WINDOW_MINUTES),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.booking_repo = booking_repo
        self.room_ledger = room_ledger
        self.availability = availability
        self.invoice_repo = invoice_repo
        self.schedule_service = schedule_service
        self.publisher = publisher or LoggingEventPublisher()
        # PaymentReconciler; set after construction since it depends on us
        self.payments = payments
        self.hold_window = hold_window
        self.clock = clock

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repo.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("booking", booking_id, 404)
        return booking

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        bookings = self.booking_repo.get_user_bookings(user_id)
        return sorted(bookings, key=lambda b: b.created_at, reverse=True)

    def create_booking(
        self, req: BookingRequest, user_id: str, role: Optional[UserRole] = None
    ) -> Booking:
        """Hold the room for ``user_id``, or for ``req.user_id`` when staff book for a guest.

        Staff may also record a desk payment; the booking is then confirmed
        straight away instead of waiting for the gateway.
        """
        guest_id = user_id
        if req.on_behalf_of_guest:
            if role not in STAFF_ROLES:
                raise Forbidden("only staff can book for a guest or take payment at the desk")
            guest_id = req.user_id or user_id
        self._validate_dates(req.checkin, req.checkout)

        room = self.room_ledger.get(req.room_id)
        if req.guests > room.capacity:
            raise InvalidGuestCount(
                f"room {room.room_id} sleeps at most {room.capacity} guest(s)"
            )
        if self.availability.has_conflict(room.room_id, req.checkin, req.checkout):
            raise OverlapConflict(
                f"room {room.room_id} is already booked for the selected dates"
            )
        if not self.room_ledger.is_offerable(room):
            raise RoomUnavailable(f"room {room.room_id} is not available")

        nights = (req.checkout - req.checkin).days
        booking = Booking(
            booking_id=str(uuid4()),
            user_id=guest_id,
            room_id=room.room_id,
            checkin=req.checkin,
            checkout=req.checkout,
            guests=req.guests,
            total_price=quantize(room.price_per_night * nights),
            created_at=self.clock(),
        )
        self.room_ledger.reserve(
            room.room_id,
            booking.booking_id,
            with_items=self.booking_repo.booking_put_items(booking),
        )
        logger.info(
            f"Booking {booking.booking_id} created for room {room.room_id} "
            f"{booking.checkin}..{booking.checkout} total {booking.total_price}"
        )
        self.publisher.publish("booking.created", self._event(booking))

        if req.payment_method in DESK_PAYMENT_METHODS:
            logger.info(
                f"Booking {booking.booking_id} paid at the desk by {req.payment_method.value}"
            )
            self.confirm(booking.booking_id)
            return self.get_booking(booking.booking_id)

        self._schedule(
            "schedule_hold_expiry", booking.booking_id, booking.created_at + self.hold_window
        )
        return booking

    def confirm(self, booking_id: str) -> bool:
        """Mark the booking paid. Returns False when it already was."""
        booking = self.get_booking(booking_id)
        if self._is_confirmed(booking):
            logger.info(f"Booking {booking_id} already confirmed; ignoring duplicate")
            return False
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransition(f"cannot confirm a {booking.status.value} booking")

        applied = self.booking_repo.transition(
            booking,
            BookingStatus.CONFIRMED,
            PaymentStatus.COMPLETED,
            expected_status=BookingStatus.PENDING,
        )
        if not applied:
            current = self.get_booking(booking_id)
            if self._is_confirmed(current):
                return False
            raise InvalidTransition(f"cannot confirm a {current.status.value} booking")

        logger.info(f"Booking {booking_id} confirmed")
        self._schedule("schedule_checkout", booking_id, self._checkout_deadline(booking.checkout))
        self.publisher.publish("booking.confirmed", self._event(booking))
        return True

    def fail_payment(self, booking_id: str, event_type: str = "payment.failed") -> bool:
        """Cancel an unpaid booking and give its room back.

        Used for gateway-reported failures and for holds that expired without
        an outcome. Returns False when the booking was already cancelled.
        """
        booking = self.get_booking(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return False
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransition(f"cannot fail payment of a {booking.status.value} booking")

        applied = self.booking_repo.transition(
            booking,
            BookingStatus.CANCELLED,
            PaymentStatus.FAILED,
            expected_status=BookingStatus.PENDING,
            expected_payment_status=PaymentStatus.PENDING,
        )
        if not applied:
            current = self.get_booking(booking_id)
            if current.status == BookingStatus.CANCELLED:
                return False
            raise InvalidTransition(f"cannot fail payment of a {current.status.value} booking")

        self.room_ledger.release(booking.room_id, booking_id)
        logger.warning(f"Booking {booking_id} cancelled ({event_type}); room {booking.room_id} released")
        self.publisher.publish(event_type, self._event(booking))
        return True

    def expire_hold(self, booking_id: str) -> bool:
        return self.fail_payment(booking_id, event_type="booking.expired")

    def cancel_booking(
        self, booking_id: str, requester_id: str, role: Optional[UserRole] = None
    ) -> CancellationResult:
        booking = self.get_booking(booking_id)
        self._authorize(booking, requester_id, role)
        if not booking.is_active:
            raise InvalidTransition(f"cannot cancel a {booking.status.value} booking")

        original_payment = booking.payment_status
        refund_due = original_payment == PaymentStatus.COMPLETED
        applied = self.booking_repo.transition(
            booking,
            BookingStatus.CANCELLED,
            PaymentStatus.REFUND_PENDING if refund_due else original_payment,
            expected_status=booking.status,
            expected_payment_status=original_payment,
        )
        if not applied:
            raise InvalidTransition(f"booking {booking_id} changed while cancelling; reload it")

        result = CancellationResult(booking=booking)
        try:
            self._void_open_invoice(booking_id)
            if refund_due:
                result.refund_amount = quantize(booking.total_price * REFUND_RATIO)
                outcome = self._refund(booking, result.refund_amount)
                if outcome.succeeded:
                    self.booking_repo.set_payment_status(
                        booking, PaymentStatus.REFUNDED, expected=PaymentStatus.REFUND_PENDING
                    )
                else:
                    result.warning = REFUND_WARNING
                    logger.warning(
                        f"Refund of {result.refund_amount} for booking {booking_id} "
                        f"left pending: {outcome.detail}"
                    )
                    self.publisher.publish("refund.pending", self._event(booking))
        finally:
            self.room_ledger.release(booking.room_id, booking_id)

        logger.info(f"Booking {booking_id} cancelled by {requester_id}")
        self.publisher.publish("booking.cancelled", self._event(booking))
        return result

    def complete_stay(self, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransition(f"cannot check out a {booking.status.value} booking")
        invoice = self.invoice_repo.get_invoice_for_booking(booking_id)
        if invoice is None or invoice.status != InvoiceStatus.PAID:
            raise InvoiceNotSettled(f"invoice for booking {booking_id} is not settled")

        applied = self.booking_repo.transition(
            booking,
            BookingStatus.COMPLETED,
            booking.payment_status,
            expected_status=BookingStatus.CONFIRMED,
        )
        if not applied:
            raise InvalidTransition(f"booking {booking_id} is no longer confirmed")

        self.room_ledger.release_and_mark_dirty(booking.room_id, booking_id)
        logger.info(f"Booking {booking_id} completed; room {booking.room_id} needs cleaning")
        self.publisher.publish("booking.completed", self._event(booking))
        return booking

    def reschedule(
        self,
        booking_id: str,
        checkin: date,
        checkout: date,
        requester_id: str,
        role: Optional[UserRole] = None,
    ) -> Booking:
        booking = self.get_booking(booking_id)
        self._authorize(booking, requester_id, role)
        if (
            booking.status != BookingStatus.PENDING
            or booking.payment_status != PaymentStatus.PENDING
            or booking.payment_ref
        ):
            raise InvalidTransition("only unpaid pending bookings can change dates")
        self._validate_dates(checkin, checkout)

        room = self.room_ledger.get(booking.room_id)
        if self.availability.has_conflict(
            room.room_id, checkin, checkout, exclude_booking_id=booking_id
        ):
            raise OverlapConflict(f"room {room.room_id} is already booked for the selected dates")

        total = quantize(room.price_per_night * (checkout - checkin).days)
        if not self.booking_repo.update_dates(booking, checkin, checkout, total):
            raise InvalidTransition(f"booking {booking_id} changed while rescheduling; reload it")
        logger.info(f"Booking {booking_id} moved to {checkin}..{checkout} total {total}")
        return booking

    def reconcile_expired(self, now: Optional[datetime] = None) -> dict:
        """Sweep for stays whose checkout date has passed without a checkout.

        Pending holds past their window are handed to the payment reconciler.
        """
        now = now or self.clock()
        summary = {"completed": 0, "skipped": 0}
        for booking in self.booking_repo.list_bookings_by_status([BookingStatus.CONFIRMED]):
            if self.complete_overdue(booking, now):
                summary["completed"] += 1
            else:
                summary["skipped"] += 1
        if self.payments is not None:
            summary.update(self.payments.reconcile_pending(now))
        logger.info(f"Reconciliation sweep finished: {summary}")
        return summary

    def complete_overdue(self, booking: Booking, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        if booking.status != BookingStatus.CONFIRMED or booking.checkout >= now.date():
            return False

        applied = self.booking_repo.transition(
            booking,
            BookingStatus.COMPLETED,
            booking.payment_status,
            expected_status=BookingStatus.CONFIRMED,
        )
        if not applied:
            return False

        try:
            room = self.room_ledger.get(booking.room_id)
        except NotFoundException:
            logger.warning(f"Room {booking.room_id} of booking {booking.booking_id} is gone")
            return True
        if room.occupancy == Occupancy.OCCUPIED:
            self.room_ledger.release_and_mark_dirty(booking.room_id, booking.booking_id)
        logger.warning(
            f"Booking {booking.booking_id} force-completed after checkout date "
            f"{booking.checkout}; invoice stays open until checkout"
        )
        self.publisher.publish("booking.completed", self._event(booking))
        return True

    def _void_open_invoice(self, booking_id: str):
        invoice = self.invoice_repo.get_invoice_for_booking(booking_id)
        if invoice is None or invoice.status != InvoiceStatus.OPEN:
            return
        if self.invoice_repo.void_invoice(invoice):
            logger.info(f"Invoice {invoice.invoice_id} voided with booking {booking_id}")
        else:
            logger.warning(f"Invoice {invoice.invoice_id} closed before booking {booking_id} was cancelled")

    def _refund(self, booking: Booking, amount) -> RefundOutcome:
        if self.payments is None:
            return RefundOutcome(booking.payment_ref, amount, False, "no payment reconciler")
        return self.payments.refund(booking, amount)

    def _validate_dates(self, checkin: date, checkout: date):
        validate_range(checkin, checkout)
        if checkin < self.clock().date():
            raise InvalidDateRange("checkin cannot be in the past")
        if (checkout - checkin).days > MAX_STAY:
            raise InvalidDateRange(f"Maximum stay is {MAX_STAY} days")

    @staticmethod
    def _authorize(booking: Booking, requester_id: str, role: Optional[UserRole]):
        if role in STAFF_ROLES:
            return
        if booking.user_id != requester_id:
            raise Forbidden("not allowed to modify this booking")

    @staticmethod
    def _is_confirmed(booking: Booking) -> bool:
        return (
            booking.status in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
            and booking.payment_status == PaymentStatus.COMPLETED
        )

    @staticmethod
    def _checkout_deadline(checkout: date) -> datetime:
        return datetime.combine(checkout + timedelta(days=1), time.min, tzinfo=timezone.utc)

    def _schedule(self, method: str, booking_id: str, at: datetime):
        if not self.schedule_service:
            return
        try:
            getattr(self.schedule_service, method)(booking_id, at)
        except Exception as err:
            # the periodic sweep still covers this booking
            logger.error(f"Could not schedule {method} for booking {booking_id}: {err}")

    @staticmethod
    def _event(booking: Booking) -> dict:
        return {
            "booking_id": booking.booking_id,
            "room_id": booking.room_id,
            "user_id": booking.user_id,
            "status": booking.status.value,
            "payment_status": booking.payment_status.value,
        }
