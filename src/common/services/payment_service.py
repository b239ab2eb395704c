import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from common.models.bookings import Booking, BookingStatus, PaymentStatus
from common.models.payments import (
    GatewayOutcome,
    PaymentInitiation,
    RefundOutcome,
    VerificationResult,
)
from common.models.users import STAFF_ROLES, UserRole
from common.repository.booking_repo import BookingRepository
from common.services.booking_service import BookingService
from common.services.events import EventPublisher, LoggingEventPublisher
from common.services.gateway_client import ChapaClient
from common.utils.constants import DEFAULT_CURRENCY, HOLD_WINDOW_MINUTES, PAYMENT_REF_PREFIX
from common.utils.custom_exceptions import (
    AlreadyProcessed,
    AmountMismatch,
    Forbidden,
    GatewayError,
    GatewayTimeout,
    InvalidTransition,
    NotFoundException,
    PaymentFailed,
    PaymentGatewayUnconfigured,
)
from common.utils.datetime_normaliser import utc_now
from common.utils.money import amounts_match, quantize

logger = logging.getLogger(__name__)

_SETTLED_PAYMENTS = frozenset(
    {PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, PaymentStatus.REFUND_PENDING}
)


class PaymentReconciler:
    """Keeps booking payment state in line with what the gateway reports.

    Outcomes reach us three ways: the gateway webhook, the guest's return
    redirect and the reconciliation sweep. All of them funnel into
    :meth:`verify`, which is safe to call any number of times.
    """

    def __init__(
        self,
        booking_repo: BookingRepository,
        booking_service: BookingService,
        gateway: ChapaClient,
        callback_url: str = "",
        return_url: str = "",
        currency: str = DEFAULT_CURRENCY,
        publisher: Optional[EventPublisher] = None,
        hold_window: timedelta = timedelta(minutes=HOLD_WINDOW_MINUTES),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.booking_repo = booking_repo
        self.booking_service = booking_service
        self.gateway = gateway
        self.callback_url = callback_url
        self.return_url = return_url
        self.currency = currency
        self.publisher = publisher or LoggingEventPublisher()
        self.hold_window = hold_window
        self.clock = clock

    def initiate(
        self,
        booking_id: str,
        declared_amount: Optional[Decimal] = None,
        requester_id: Optional[str] = None,
        role: Optional[UserRole] = None,
        customer: Optional[dict] = None,
    ) -> PaymentInitiation:
        if not self.gateway.configured:
            raise PaymentGatewayUnconfigured("payment service is not configured")

        booking = self.booking_repo.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("booking", booking_id, 404)
        if requester_id is not None and role not in STAFF_ROLES and booking.user_id != requester_id:
            raise Forbidden("not allowed to pay for this booking")
        if booking.payment_status != PaymentStatus.PENDING or booking.payment_ref:
            raise AlreadyProcessed(f"payment for booking {booking_id} is already in progress or done")
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransition(f"booking {booking_id} is {booking.status.value}")

        amount = quantize(booking.total_price)
        if declared_amount is not None and not amounts_match(declared_amount, amount):
            logger.warning(
                f"Declared amount {declared_amount} does not match {amount} for booking {booking_id}"
            )
            raise AmountMismatch(f"amount must be {amount}")

        reference = f"{PAYMENT_REF_PREFIX}-{booking_id}-{int(self.clock().timestamp() * 1000)}"
        if not self.booking_repo.set_payment_ref(booking, reference):
            raise AlreadyProcessed(f"payment for booking {booking_id} is already in progress")

        try:
            checkout_url = self.gateway.initialize_transaction(
                amount,
                self.currency,
                reference,
                self.callback_url,
                self.return_url,
                customer,
            )
        except GatewayTimeout:
            # the charge may exist at the gateway; verify() settles it later
            logger.warning(f"Payment init for booking {booking_id} timed out; keeping ref {reference}")
            raise
        except GatewayError as err:
            logger.error(
                f"Payment init for booking {booking_id} failed: {err} raw={err.raw_response}"
            )
            self.booking_repo.clear_payment_ref(booking, reference)
            raise PaymentFailed("Payment could not be started. Please try again.") from err

        logger.info(f"Payment {reference} started for booking {booking_id} amount {amount}")
        return PaymentInitiation(
            booking_id=booking_id,
            reference=reference,
            redirect_url=checkout_url,
            amount=amount,
        )

    def verify(self, reference: str) -> VerificationResult:
        booking = self.booking_repo.get_booking_by_payment_ref(reference)
        if booking is None:
            raise NotFoundException("payment", reference, 404)

        if booking.payment_status in _SETTLED_PAYMENTS:
            logger.info(f"Payment {reference} already settled ({booking.payment_status.value})")
            return VerificationResult(booking.booking_id, GatewayOutcome.SUCCESS, changed=False)
        if booking.payment_status == PaymentStatus.FAILED and booking.status != BookingStatus.CANCELLED:
            return VerificationResult(booking.booking_id, GatewayOutcome.FAILED, changed=False)

        try:
            outcome = self.gateway.verify_transaction(reference)
        except GatewayError as err:
            logger.warning(f"Could not verify payment {reference}: {err}; leaving it pending")
            return VerificationResult(booking.booking_id, GatewayOutcome.PENDING, changed=False)

        if outcome == GatewayOutcome.SUCCESS:
            changed = self._apply_success(booking)
        elif outcome == GatewayOutcome.FAILED:
            changed = self._apply_failure(booking)
        else:
            changed = False
        logger.info(f"Payment {reference} verified as {outcome.value}; changed={changed}")
        return VerificationResult(booking.booking_id, outcome, changed)

    def refund(self, booking: Booking, amount: Decimal) -> RefundOutcome:
        """Ask the gateway to refund ``amount``. Never raises on gateway errors."""
        amount = quantize(amount)
        if not booking.payment_ref:
            logger.error(f"Booking {booking.booking_id} has no payment reference to refund")
            return RefundOutcome(None, amount, False, "no payment reference")
        try:
            self.gateway.refund(booking.payment_ref, amount)
        except GatewayError as err:
            logger.error(
                f"Refund of {amount} for booking {booking.booking_id} "
                f"(ref {booking.payment_ref}) failed: {err} raw={err.raw_response}"
            )
            return RefundOutcome(booking.payment_ref, amount, False, str(err))
        logger.info(f"Refunded {amount} for booking {booking.booking_id}")
        return RefundOutcome(booking.payment_ref, amount, True)

    def reconcile_pending(self, now: Optional[datetime] = None) -> dict:
        now = now or self.clock()
        summary = {"confirmed": 0, "failed": 0, "expired": 0}
        for booking in self.booking_repo.list_bookings_by_status([BookingStatus.PENDING]):
            result = self.reconcile_hold(booking, now)
            if result in summary:
                summary[result] += 1
        return summary

    def reconcile_hold(self, booking: Booking, now: Optional[datetime] = None) -> str:
        """Resolve one unpaid hold: ``confirmed``, ``failed``, ``expired`` or ``skipped``."""
        now = now or self.clock()
        if booking.status != BookingStatus.PENDING or booking.payment_status != PaymentStatus.PENDING:
            return "skipped"
        if booking.created_at + self.hold_window > now:
            return "skipped"

        if booking.payment_ref:
            result = self.verify(booking.payment_ref)
            if result.outcome == GatewayOutcome.SUCCESS:
                return "confirmed"
            if result.outcome == GatewayOutcome.FAILED:
                return "failed"

        try:
            expired = self.booking_service.expire_hold(booking.booking_id)
        except InvalidTransition:
            return "skipped"
        return "expired" if expired else "skipped"

    def _apply_success(self, booking: Booking) -> bool:
        if booking.status == BookingStatus.PENDING:
            try:
                return self.booking_service.confirm(booking.booking_id)
            except InvalidTransition:
                booking = self.booking_repo.get_booking_by_id(booking.booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return self._refund_late_payment(booking)
        return False

    def _apply_failure(self, booking: Booking) -> bool:
        if booking.status != BookingStatus.PENDING:
            return False
        try:
            return self.booking_service.fail_payment(booking.booking_id)
        except InvalidTransition:
            return False

    def _refund_late_payment(self, booking: Booking) -> bool:
        """Money arrived for a hold that already lapsed; give all of it back."""
        if booking.payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            return False
        if not self.booking_repo.set_payment_status(
            booking, PaymentStatus.REFUND_PENDING, expected=booking.payment_status
        ):
            return False

        logger.warning(f"Payment {booking.payment_ref} succeeded after booking {booking.booking_id} lapsed")
        outcome = self.refund(booking, booking.total_price)
        if outcome.succeeded:
            self.booking_repo.set_payment_status(
                booking, PaymentStatus.REFUNDED, expected=PaymentStatus.REFUND_PENDING
            )
        else:
            self.publisher.publish(
                "refund.pending",
                {"booking_id": booking.booking_id, "amount": str(outcome.amount)},
            )
        return True
