import logging
import os
from boto3 import resource

from common.schemas.bookings import RescheduleRequest
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import (
    ConflictError,
    Forbidden,
    InvalidDateRange,
    NotFoundException,
)
from common.utils.request_context import get_caller, path_param
from common.utils.serializers import booking_to_dict
from pydantic import ValidationError

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = build_services(table).booking_service


def reschedule_booking(event, context):
    try:
        user_id, role = get_caller(event)
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    booking_id = path_param(event, "booking_id")
    if not booking_id:
        return send_custom_response(400, "booking_id is required in the path")
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = RescheduleRequest.model_validate_json(event["body"])
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)

    try:
        booking = booking_service.reschedule(
            booking_id, request_body.checkin, request_body.checkout, user_id, role
        )
    except InvalidDateRange as err:
        return send_custom_response(400, str(err))
    except Forbidden as err:
        return send_custom_response(403, str(err))
    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))
    except ConflictError as err:
        return send_custom_response(409, str(err))
    except Exception:
        logger.exception(f"Unhandled error rescheduling booking {booking_id}")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(200, "Booking updated successfully", booking_to_dict(booking))
