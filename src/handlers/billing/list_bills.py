import logging
import os
from boto3 import resource

from common.models.users import STAFF_ROLES
from common.utils.bootstrap import build_services
from common.utils.custom_response import send_custom_response
from common.utils.request_context import get_caller
from common.utils.serializers import bill_to_dict, invoice_to_dict

logger = logging.getLogger(__name__)

TABLE_NAME = os.environ.get("TABLE_NAME")
REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

invoices = build_services(table).invoices


def list_bills(event, context):
    """Front desk view: ``status=active`` (default) for running bills, ``status=paid`` for history."""
    try:
        _, role = get_caller(event)
    except KeyError:
        return send_custom_response(401, "Unauthorized")

    if role not in STAFF_ROLES:
        return send_custom_response(403, "Only staff can list bills")

    params = event.get("queryStringParameters") or {}
    status = (params.get("status") or "active").lower()
    if status not in ("active", "paid"):
        return send_custom_response(400, "status must be active or paid")

    try:
        if status == "active":
            data = [bill_to_dict(bill) for bill in invoices.active_bills()]
        else:
            data = [invoice_to_dict(invoice) for invoice in invoices.invoice_history()]
    except Exception:
        logger.exception(f"Unhandled error listing {status} bills")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(200, f"{len(data)} {status} bill(s)", data)
