import logging
import os
from boto3 import resource

from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import ConflictError, Forbidden, NotFoundException
from common.utils.money import format_amount
from common.utils.request_context import get_caller, path_param
from common.utils.serializers import booking_to_dict

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = build_services(table).booking_service


def cancel_booking(event, context):
    try:
        user_id, role = get_caller(event)
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    booking_id = path_param(event, "booking_id")
    if not booking_id:
        return send_custom_response(400, "booking_id is required in the path")

    try:
        result = booking_service.cancel_booking(booking_id, user_id, role)
    except Forbidden as err:
        return send_custom_response(403, str(err))
    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))
    except ConflictError as err:
        return send_custom_response(409, str(err))
    except Exception:
        logger.exception(f"Unhandled error cancelling booking {booking_id}")
        return send_custom_response(500, "Internal server error")

    data = booking_to_dict(result.booking)
    if result.refund_amount is not None:
        data["refund_amount"] = format_amount(result.refund_amount)
    if result.warning:
        data["warning"] = result.warning
    return send_custom_response(200, "Booking cancelled successfully", data)
