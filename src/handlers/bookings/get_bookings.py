import logging
import os
from boto3 import resource

from common.models.users import STAFF_ROLES
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import NotFoundException
from common.utils.request_context import get_caller
from common.utils.serializers import booking_to_dict

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = build_services(table).booking_service


def get_user_bookings(event, context):
    try:
        try:
            user_id, role = get_caller(event)
        except KeyError:
            return send_custom_response(401, "Unauthorized")

        params = event.get("queryStringParameters") or {}
        requested_user_id = params.get("user_id") or user_id

        if requested_user_id != user_id and role not in STAFF_ROLES:
            return send_custom_response(403, "Forbidden")

        bookings = booking_service.get_user_bookings(requested_user_id)
        result = [booking_to_dict(b) for b in bookings]

        return send_custom_response(
            200,
            "Bookings retrieved successfully",
            {
                "count": len(result),
                "bookings": result
            }
        )

    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))

    except Exception:
        logger.exception("Unhandled error listing bookings")
        return send_custom_response(500, "Internal server error")
