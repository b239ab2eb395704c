import logging
import os
from boto3 import resource

from common.schemas.payments import InitiatePaymentRequest
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import (
    AmountMismatch,
    ConflictError,
    Forbidden,
    GatewayError,
    GatewayTimeout,
    NotFoundException,
    PaymentGatewayUnconfigured,
)
from common.utils.money import format_amount
from common.utils.request_context import get_caller
from pydantic import ValidationError

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

payments = build_services(table).payments


def initiate_payment(event, context):
    try:
        user_id, role = get_caller(event)
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = InitiatePaymentRequest.model_validate_json(event["body"])
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)

    try:
        initiation = payments.initiate(
            request_body.booking_id,
            declared_amount=request_body.amount,
            requester_id=user_id,
            role=role,
            customer=request_body.customer(),
        )
    except AmountMismatch as err:
        return send_custom_response(400, str(err))
    except Forbidden as err:
        return send_custom_response(403, str(err))
    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))
    except ConflictError as err:
        return send_custom_response(409, str(err))
    except PaymentGatewayUnconfigured:
        return send_custom_response(503, "Payments are temporarily unavailable")
    except GatewayTimeout:
        return send_custom_response(
            502, "Payment provider is slow to respond. Check your booking status shortly."
        )
    except GatewayError:
        return send_custom_response(502, "Payment could not be started. Please try again.")
    except Exception:
        logger.exception(f"Unhandled error starting payment for {request_body.booking_id}")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(
        200,
        "Payment initiated",
        {
            "booking_id": initiation.booking_id,
            "reference": initiation.reference,
            "amount": format_amount(initiation.amount),
            "redirect_url": initiation.redirect_url,
        },
    )
