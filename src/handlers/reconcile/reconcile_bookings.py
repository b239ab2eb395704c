import logging
import os
from boto3 import resource

from common.utils.bootstrap import build_services
from common.utils.custom_exceptions import NotFoundException

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

services = build_services(table)
booking_service = services.booking_service
payments = services.payments


def reconcile_bookings(event, context):
    """Target of one-shot schedules and of the periodic sweep rule.

    One-shot schedules carry ``{"booking_id", "action"}`` where action is
    ``expire_hold`` or ``checkout``; anything else runs the full sweep.
    """
    event = event or {}
    booking_id = event.get("booking_id")
    action = event.get("action")

    if not booking_id:
        return booking_service.reconcile_expired()

    try:
        booking = booking_service.get_booking(booking_id)
    except NotFoundException as err:
        logger.warning(f"Scheduled {action} skipped: {err}")
        return {"booking_id": booking_id, "result": "missing"}

    if action == "expire_hold":
        result = payments.reconcile_hold(booking)
    elif action == "checkout":
        result = "completed" if booking_service.complete_overdue(booking) else "skipped"
    else:
        logger.warning(f"Unknown reconcile action {action!r} for booking {booking_id}")
        result = "skipped"

    logger.info(f"Scheduled {action} for booking {booking_id}: {result}")
    return {"booking_id": booking_id, "result": result}
