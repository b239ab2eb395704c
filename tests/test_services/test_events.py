import json
import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from common.services.events import EVENT_SOURCE, EventBridgePublisher, LoggingEventPublisher


class TestEventBridgePublisher(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.client.put_events.return_value = {"FailedEntryCount": 0}
        self.publisher = EventBridgePublisher("hotel-bus", client=self.client)

    def test_publish_sends_one_entry(self):
        self.publisher.publish("booking.confirmed", {"booking_id": "b1"})

        _, kwargs = self.client.put_events.call_args
        entry = kwargs["Entries"][0]
        self.assertEqual(entry["Source"], EVENT_SOURCE)
        self.assertEqual(entry["DetailType"], "booking.confirmed")
        self.assertEqual(entry["EventBusName"], "hotel-bus")
        self.assertEqual(json.loads(entry["Detail"]), {"booking_id": "b1"})

    def test_publish_failure_is_logged_not_raised(self):
        self.client.put_events.side_effect = ClientError(
            error_response={"Error": {"Code": "InternalException", "Message": "boom"}},
            operation_name="PutEvents",
        )

        with self.assertLogs("common.services.events", level="ERROR"):
            self.publisher.publish("booking.cancelled", {"booking_id": "b1"})


class TestLoggingEventPublisher(unittest.TestCase):
    def test_logs_event(self):
        with self.assertLogs("common.services.events", level="INFO") as logs:
            LoggingEventPublisher().publish("invoice.settled", {"invoice_id": "i1"})

        self.assertIn("invoice.settled", logs.output[0])


if __name__ == "__main__":
    unittest.main()
