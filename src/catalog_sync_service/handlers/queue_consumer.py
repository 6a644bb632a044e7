"""Long-polling SQS consumer for running sync jobs outside Lambda."""

import asyncio
import logging
from typing import Any

from botocore.exceptions import ClientError

from catalog_sync_service.handlers.job_handler import JobHandler

logger = logging.getLogger(__name__)


class QueueConsumer:
    """Polls the job queue and runs messages with bounded concurrency.

    A message is deleted only after its job reached a terminal state (or was
    dropped as malformed). Messages whose job raised an unexpected error are
    left on the queue and reappear after the visibility timeout.
    """

    def __init__(
        self,
        sqs_client: Any,
        queue_url: str,
        job_handler: JobHandler,
        concurrency: int = 4,
        wait_time_seconds: int = 20,
    ) -> None:
        """Initialize the consumer.

        Args:
            sqs_client: Boto3 SQS client
            queue_url: URL of the job queue
            job_handler: Handler running each job
            concurrency: Maximum number of jobs running at once
            wait_time_seconds: Long-poll wait per receive call
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.sqs_client = sqs_client
        self.queue_url = queue_url
        self.job_handler = job_handler
        self.concurrency = concurrency
        self.wait_time_seconds = wait_time_seconds
        self._semaphore = asyncio.Semaphore(concurrency)
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    async def poll_once(self) -> int:
        """Receive one batch and run it.

        Returns:
            int: Number of messages acknowledged
        """
        try:
            response = await asyncio.to_thread(
                self.sqs_client.receive_message,
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=min(self.concurrency, 10),
                WaitTimeSeconds=self.wait_time_seconds,
            )
        except ClientError as e:
            logger.error(f"Failed to receive from job queue: {e}")  # pragma: no cover
            return 0  # pragma: no cover

        messages = response.get("Messages", [])
        if not messages:
            return 0

        results = await asyncio.gather(*(self._process(message) for message in messages))
        return sum(1 for acknowledged in results if acknowledged)

    async def run(self) -> None:
        """Poll until stopped."""
        logger.info(f"Job queue consumer started on {self.queue_url} (concurrency {self.concurrency})")
        while not self._stopped:
            await self.poll_once()
        logger.info("Job queue consumer stopped")

    async def _process(self, message: dict[str, Any]) -> bool:
        async with self._semaphore:
            try:
                await self.job_handler.handle_message(message["Body"])
            except Exception as e:
                logger.exception(f"Job message {message.get('MessageId')} left for redelivery: {e}")
                return False

        try:
            await asyncio.to_thread(
                self.sqs_client.delete_message,
                QueueUrl=self.queue_url,
                ReceiptHandle=message["ReceiptHandle"],
            )
        except ClientError as e:
            logger.error(f"Failed to delete job message {message.get('MessageId')}: {e}")
            return False
        return True
