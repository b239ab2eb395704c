import logging
import os
from boto3 import resource

from common.models.users import STAFF_ROLES
from common.schemas.invoices import CheckoutRequest
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import ConflictError, NotFoundException
from common.utils.request_context import get_caller, path_param
from common.utils.serializers import invoice_to_dict
from pydantic import ValidationError

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

invoices = build_services(table).invoices


def checkout(event, context):
    try:
        _, role = get_caller(event)
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    if role not in STAFF_ROLES:
        return send_custom_response(403, "Only staff can check guests out")

    invoice_id = path_param(event, "invoice_id")
    if not invoice_id:
        return send_custom_response(400, "invoice_id is required in the path")
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = CheckoutRequest.model_validate_json(event["body"])
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)

    try:
        invoice = invoices.checkout(
            invoice_id, request_body.payment_method, receipt_email=request_body.email
        )
    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))
    except ConflictError as err:
        return send_custom_response(409, str(err))
    except Exception:
        logger.exception(f"Unhandled error checking out invoice {invoice_id}")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(200, "Checked out successfully", invoice_to_dict(invoice))
