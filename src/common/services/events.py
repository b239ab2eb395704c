import json
import logging
from typing import Protocol

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

EVENT_SOURCE = "hotel.booking-core"


class EventPublisher(Protocol):
    def publish(self, event_type: str, payload: dict) -> None: ...


class LoggingEventPublisher:
    def publish(self, event_type: str, payload: dict) -> None:
        logger.info(f"event {event_type}: {json.dumps(payload, default=str)}")


class EventBridgePublisher:
    """Pushes booking/payment updates to staff dashboards through EventBridge."""

    def __init__(self, bus_name: str, region="ap-south-1", client=None):
        self.bus_name = bus_name
        self.client = client if client else boto3.client("events", region_name=region)

    def publish(self, event_type: str, payload: dict) -> None:
        entry = {
            "Source": EVENT_SOURCE,
            "DetailType": event_type,
            "Detail": json.dumps(payload, default=str),
            "EventBusName": self.bus_name,
        }
        try:
            response = self.client.put_events(Entries=[entry])
        except ClientError as err:
            logger.error(f"Failed to publish {event_type}: {err}")
            return
        if response.get("FailedEntryCount"):
            logger.error(f"EventBridge rejected {event_type}: {response.get('Entries')}")
