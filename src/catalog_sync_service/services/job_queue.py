"""SQS publisher for sync job payloads."""

import logging
from typing import Any

from botocore.exceptions import ClientError

from catalog_sync_service.models.sync_models import SyncJobPayload

logger = logging.getLogger(__name__)


class JobQueuePublisher:
    """Publishes sync jobs to a durable, at-least-once SQS queue.

    On a FIFO queue jobs of one restaurant share a message group so they are
    delivered one at a time; the job id is the deduplication id.
    """

    def __init__(self, sqs_client: Any, queue_url: str, fifo: bool = False) -> None:
        """Initialize the publisher.

        Args:
            sqs_client: Boto3 SQS client
            queue_url: URL of the job queue
            fifo: Whether the queue is a FIFO queue
        """
        self.sqs_client = sqs_client
        self.queue_url = queue_url
        self.fifo = fifo or queue_url.endswith(".fifo")

    def publish(self, payload: SyncJobPayload) -> bool:
        """Send one job payload.

        Args:
            payload: Job payload to send

        Returns:
            bool: True if the message was accepted, False otherwise
        """
        message: dict[str, Any] = {
            "QueueUrl": self.queue_url,
            "MessageBody": payload.model_dump_json(exclude_none=True),
            "MessageAttributes": {
                "job_type": {"DataType": "String", "StringValue": payload.job_type.value},
            },
        }
        if self.fifo:
            message["MessageGroupId"] = payload.restaurant_id
            message["MessageDeduplicationId"] = payload.job_id

        try:
            response = self.sqs_client.send_message(**message)
        except ClientError as e:
            logger.error(f"Failed to publish job {payload.job_id}: {e}")
            return False

        logger.info(f"Published job {payload.job_id} ({payload.job_type.value}) as {response.get('MessageId')}")
        return True


def parse_job_message(body: str) -> SyncJobPayload:
    """Parse a queue message body into a job payload.

    Raises:
        pydantic.ValidationError: If the body is not a valid payload
    """
    return SyncJobPayload.model_validate_json(body)
