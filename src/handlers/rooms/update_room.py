import logging
import os
from boto3 import resource

from common.models.users import STAFF_ROLES
from common.schemas.rooms import UpdateRoomRequest
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import NotFoundException, RoomUnavailable
from common.utils.request_context import parse_role, path_param
from pydantic import ValidationError

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

room_ledger = build_services(table).room_ledger


def update_room(event, context):
    """Housekeeping updates: CLEAN, DIRTY or MAINTENANCE."""
    try:
        role_raw = event["requestContext"]["authorizer"]["role"]
    except (KeyError, TypeError):
        return send_custom_response(401, "Unauthorized")

    if parse_role(role_raw) not in STAFF_ROLES:
        return send_custom_response(403, "Only staff can update rooms")

    room_id = path_param(event, "room_id")
    if not room_id:
        return send_custom_response(400, "room_id is required in the path")
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = UpdateRoomRequest.model_validate_json(event["body"])
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)

    try:
        room_ledger.set_cleanliness(room_id, request_body.cleanliness)
    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))
    except RoomUnavailable as err:
        return send_custom_response(409, str(err))
    except Exception:
        logger.exception(f"Unhandled error updating room {room_id}")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(
        200,
        "Room updated successfully",
        {
            "room_id": room_id,
            "cleanliness": request_body.cleanliness.value
        }
    )
