from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import boto3

from common.repository.booking_repo import BookingRepository
from common.repository.food_order_repo import FoodOrderRepository
from common.repository.invoice_repo import InvoiceRepository
from common.repository.room_repo import RoomRepository
from common.services.availability import AvailabilityChecker
from common.services.booking_service import BookingService
from common.services.events import EventBridgePublisher, LoggingEventPublisher
from common.services.gateway_client import ChapaClient
from common.services.invoice_service import InvoiceService
from common.services.payment_service import PaymentReconciler
from common.services.room_ledger import RoomLedger
from common.services.schedule_service import SchedulerService
from common.utils.config import Settings


@dataclass
class Services:
    settings: Settings
    booking_repo: BookingRepository
    room_ledger: RoomLedger
    availability: AvailabilityChecker
    booking_service: BookingService
    payments: PaymentReconciler
    invoices: InvoiceService


def build_services(table, settings: Optional[Settings] = None) -> Services:
    """Wire every service on top of one DynamoDB table."""
    settings = settings or Settings.from_env()
    hold_window = timedelta(minutes=settings.hold_window_minutes)

    booking_repo = BookingRepository(table)
    invoice_repo = InvoiceRepository(table)
    room_ledger = RoomLedger(RoomRepository(table))
    availability = AvailabilityChecker(booking_repo)

    publisher = (
        EventBridgePublisher(settings.event_bus_name, region=settings.region)
        if settings.event_bus_name
        else LoggingEventPublisher()
    )
    scheduler = (
        SchedulerService(
            settings.reconcile_lambda_arn, settings.scheduler_role_arn, region=settings.region
        )
        if settings.scheduler_enabled
        else None
    )

    booking_service = BookingService(
        booking_repo=booking_repo,
        room_ledger=room_ledger,
        availability=availability,
        invoice_repo=invoice_repo,
        schedule_service=scheduler,
        publisher=publisher,
        hold_window=hold_window,
    )
    payments = PaymentReconciler(
        booking_repo=booking_repo,
        booking_service=booking_service,
        gateway=ChapaClient(
            settings.chapa_secret_key,
            base_url=settings.chapa_base_url,
            timeout=settings.gateway_timeout_seconds,
        ),
        callback_url=settings.callback_url,
        return_url=settings.return_url,
        currency=settings.currency,
        publisher=publisher,
        hold_window=hold_window,
    )
    booking_service.payments = payments

    invoices = InvoiceService(
        invoice_repo=invoice_repo,
        booking_repo=booking_repo,
        food_orders=FoodOrderRepository(table),
        booking_service=booking_service,
        publisher=publisher,
        ses=boto3.client("ses", region_name=settings.region) if settings.invoice_sender else None,
        sender=settings.invoice_sender,
    )

    return Services(
        settings=settings,
        booking_repo=booking_repo,
        room_ledger=room_ledger,
        availability=availability,
        booking_service=booking_service,
        payments=payments,
        invoices=invoices,
    )
