import logging
import os
from boto3 import resource

from common.models.rooms import Category
from common.services.availability import validate_range
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import InvalidDateRange, NotFoundException
from common.utils.datetime_normaliser import parse_date
from common.utils.serializers import room_to_dict

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

services = build_services(table)
room_ledger = services.room_ledger
availability = services.availability


def get_rooms(event, context):
    """Availability for one ``room_id``, or every free room in a ``category``."""
    params = event.get("queryStringParameters") or {}
    room_id = params.get("room_id")
    category_raw = params.get("category")

    if not params.get("checkin") or not params.get("checkout"):
        return send_custom_response(400, "checkin and checkout are required")
    if not room_id and not category_raw:
        return send_custom_response(400, "room_id or category is required")

    try:
        checkin = parse_date(params["checkin"])
        checkout = parse_date(params["checkout"])
        validate_range(checkin, checkout)
    except InvalidDateRange as err:
        return send_custom_response(400, str(err))
    except ValueError:
        return send_custom_response(400, "checkin and checkout must be ISO dates")

    try:
        if room_id:
            room = room_ledger.get(room_id)
            return send_custom_response(
                200,
                "successfully retrieved",
                {
                    "room_id": room.room_id,
                    "checkin": checkin.isoformat(),
                    "checkout": checkout.isoformat(),
                    "available": availability.is_room_available(room, checkin, checkout),
                },
            )

        try:
            category = Category(category_raw.upper())
        except ValueError:
            allowed = ", ".join(c.value for c in Category)
            return send_custom_response(400, f"Invalid category. Allowed: {allowed}")

        rooms = [
            room_to_dict(room)
            for room in room_ledger.list_by_category(category)
            if availability.is_room_available(room, checkin, checkout)
        ]
        return send_custom_response(
            200,
            "successfully retrieved",
            {
                "category": category.value,
                "checkin": checkin.isoformat(),
                "checkout": checkout.isoformat(),
                "count": len(rooms),
                "available_rooms": rooms,
            },
        )

    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))

    except Exception:
        logger.exception("Unhandled error checking room availability")
        return send_custom_response(500, "Internal server error")
