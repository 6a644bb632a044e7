"""Entry point for running sync jobs from the queue outside Lambda."""

import asyncio
import logging
import os
import sys

from catalog_sync_service.handlers.queue_consumer import QueueConsumer
from catalog_sync_service.observability import configure_logging, setup_observability
from lambda_dependencies import get_catalog_engine, get_job_handler, get_sqs_client

logger = logging.getLogger(__name__)


def create_consumer() -> QueueConsumer:
    """Build the queue consumer from environment configuration.

    Raises:
        ValueError: If SYNC_QUEUE_URL is not set
    """
    queue_url = os.getenv("SYNC_QUEUE_URL")
    if not queue_url:
        raise ValueError("SYNC_QUEUE_URL must be set in environment")

    return QueueConsumer(
        sqs_client=get_sqs_client(),
        queue_url=queue_url,
        job_handler=get_job_handler(),
        concurrency=int(os.getenv("WORKER_CONCURRENCY", "4")),
    )


async def start_worker() -> None:
    """Initialize observability and run the consumer loop."""
    setup_observability(engine=get_catalog_engine())
    consumer = create_consumer()
    await consumer.run()


if __name__ == "__main__":
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    logger.info("Starting catalog sync worker...")
    try:
        asyncio.run(start_worker())
    except KeyboardInterrupt:
        logger.info("Worker shut down by user")
    except Exception as e:
        logger.exception(f"Worker crashed: {e}")
        sys.exit(1)
