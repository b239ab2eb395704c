import json
import logging
import os
from boto3 import resource

from common.schemas.payments import PaymentCallback
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import NotFoundException
from pydantic import ValidationError

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

payments = build_services(table).payments


def _callback_payload(event) -> dict:
    if event.get("body"):
        payload = json.loads(event["body"])
        if not isinstance(payload, dict):
            raise ValueError("callback body must be a JSON object")
        return payload
    return event.get("queryStringParameters") or {}


def payment_callback(event, context):
    """Gateway webhook and guest return redirect.

    Always acknowledges with 200 once the reference is readable so the
    gateway does not keep retrying outcomes we have already applied.
    """
    try:
        callback = PaymentCallback.model_validate(_callback_payload(event))
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)
    except ValueError as err:
        return send_custom_response(400, f"Invalid callback payload: {err}")

    reference = callback.payment_reference
    try:
        result = payments.verify(reference)
    except NotFoundException:
        logger.warning(f"Callback for unknown payment reference {reference}")
        return send_custom_response(200, "Callback acknowledged")
    except Exception:
        logger.exception(f"Unhandled error verifying payment {reference}")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(
        200,
        "Callback processed",
        {
            "booking_id": result.booking_id,
            "outcome": result.outcome.value,
            "changed": result.changed,
        },
    )
