import logging
import os
from boto3 import resource

from common.models.rooms import Room
from common.models.users import UserRole
from common.schemas.rooms import AddRoomRequest
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import ConflictError
from common.utils.request_context import parse_role
from common.utils.serializers import room_to_dict
from pydantic import ValidationError

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

room_ledger = build_services(table).room_ledger


def add_room(event, context):
    try:
        role_raw = event["requestContext"]["authorizer"]["role"]
    except (KeyError, TypeError):
        return send_custom_response(401, "Unauthorized")

    role = parse_role(role_raw)
    if role not in (UserRole.MANAGER, UserRole.ADMIN):
        return send_custom_response(403, "Only managers or admins can add rooms")

    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = AddRoomRequest.model_validate_json(event["body"])
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)

    room = Room(
        room_id=request_body.room_id,
        category=request_body.category,
        price_per_night=request_body.price_per_night,
        capacity=request_body.capacity,
        amenities=request_body.amenities,
        floor=request_body.floor,
    )
    try:
        room_ledger.add_room(room)
    except ConflictError as err:
        return send_custom_response(409, str(err))
    except Exception:
        logger.exception(f"Unhandled error adding room {room.room_id}")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(201, f"Room {room.room_id} added successfully", room_to_dict(room))
