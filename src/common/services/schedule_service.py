import boto3
from datetime import timezone, datetime
import json
import logging

logger = logging.getLogger(__name__)


class SchedulerService:
    """One-shot EventBridge Scheduler entries that invoke the reconcile Lambda."""

    def __init__(self, lambda_arn: str, role_arn: str, region="ap-south-1", client=None):
        self.client = client if client else boto3.client("scheduler", region_name=region)
        self.lambda_arn = lambda_arn
        self.role_arn = role_arn

    def schedule_hold_expiry(self, booking_id: str, expires_at: datetime):
        return self.schedule(
            f"hold-{booking_id}",
            expires_at,
            {"booking_id": booking_id, "action": "expire_hold"},
        )

    def schedule_checkout(self, booking_id: str, checkout_time: datetime):
        return self.schedule(
            f"checkout-{booking_id}",
            checkout_time,
            {"booking_id": booking_id, "action": "checkout"},
        )

    def schedule(self, schedule_name: str, at: datetime, payload: dict):
        try:
            schedule_expression = self._to_at_expression(at)
        except ValueError as e:
            logger.error(f"Invalid time format: {e}")
            raise e

        schedule_params = {
            "Name": schedule_name,
            "ScheduleExpression": schedule_expression,
            "ScheduleExpressionTimezone": "UTC",
            "FlexibleTimeWindow": {"Mode": "OFF"},
            "Target": {
                "Arn": self.lambda_arn,
                "RoleArn": self.role_arn,
                "Input": json.dumps(payload),
            },
            "ActionAfterCompletion": "DELETE",
        }

        try:
            self.client.create_schedule(**schedule_params, ClientToken=schedule_name)
            logger.info(f"Scheduled {schedule_name} at {schedule_expression}")
            return True

        except self.client.exceptions.ConflictException:
            logger.info(f"Schedule {schedule_name} exists. Updating target time.")
            self.client.update_schedule(**schedule_params)
            return True

        except Exception:
            logger.exception(f"Failed to create schedule {schedule_name}")
            raise

    def _to_at_expression(self, dt: datetime) -> str:
        if isinstance(dt, str):
            dt = datetime.fromisoformat(dt)

        if dt.tzinfo is None:
            raise ValueError("schedule time must be timezone-aware")

        utc_dt = dt.astimezone(timezone.utc)
        return f"at({utc_dt.strftime('%Y-%m-%dT%H:%M:%S')})"
