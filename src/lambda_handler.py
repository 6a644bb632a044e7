"""AWS Lambda handler for API Gateway, SQS job and EventBridge events.

This module provides a single Lambda entry point that handles:
1. API Gateway requests (via Mangum ASGI adapter for FastAPI)
2. SQS job batches (run through the job handler with partial batch failures)
3. Scheduled EventBridge token refreshes (direct handling)

The handler automatically detects the event type and routes accordingly.
"""

import asyncio
import logging
import os
from typing import Any

from mangum import Mangum

from lambda_dependencies import (
    get_credential_service,
    get_fastapi_app,
    get_job_handler,
    initialize_lambda_environment,
)

# Initialize Lambda environment during cold start (skip in test mode)
if os.getenv("ENVIRONMENT") != "test":
    initialize_lambda_environment()

logger = logging.getLogger(__name__)

TOKEN_REFRESH_DETAIL_TYPE = "TokenRefresh"

# Create FastAPI app and Mangum adapter (cached for warm starts, skip in test mode)
if os.getenv("ENVIRONMENT") != "test":
    app = get_fastapi_app()
    mangum_handler = Mangum(app, lifespan="off")
else:
    app = None  # type: ignore
    mangum_handler = None  # type: ignore


def is_eventbridge_event(event: dict[str, Any]) -> bool:
    """Determine if the event is from EventBridge.

    Args:
        event: The Lambda event payload

    Returns:
        True if this is an EventBridge event, False otherwise
    """
    return "source" in event and "detail-type" in event and "detail" in event


def is_sqs_event(event: dict[str, Any]) -> bool:
    """Determine if the event is an SQS batch."""
    records = event.get("Records")
    return bool(records) and all(record.get("eventSource") == "aws:sqs" for record in records)


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Multi-purpose Lambda handler.

    Routes incoming events to the appropriate handler:
    - SQS job batches -> JobHandler
    - EventBridge schedules -> CredentialService token refresh
    - API Gateway requests -> FastAPI via Mangum

    Args:
        event: The Lambda event payload
        context: The Lambda context object

    Returns:
        Response dict (batchItemFailures for SQS, statusCode and body otherwise)
    """
    logger.info(f"Received Lambda invocation, request_id: {context.aws_request_id}")

    if is_sqs_event(event):
        # Errors here must propagate so the whole batch is retried
        return handle_sqs_event(event)

    try:
        if is_eventbridge_event(event):
            logger.info(
                f"Processing EventBridge event: {event.get('source')} - {event.get('detail-type')}"
            )
            return handle_eventbridge_event(event)
        else:
            logger.info("Processing API Gateway request via Mangum")
            result: dict[str, Any] = mangum_handler(event, context)
            return result

    except Exception as e:
        logger.exception(f"Unhandled error in Lambda handler: {e}")
        return {
            "statusCode": 500,
            "body": f"Internal server error: {str(e)}",
        }


def handle_sqs_event(event: dict[str, Any]) -> dict[str, Any]:
    """Run an SQS batch of sync jobs.

    Args:
        event: The SQS event payload

    Returns:
        Partial batch response listing the messages to redeliver
    """
    records = event["Records"]
    logger.info(f"Processing {len(records)} sync job messages")

    job_handler = get_job_handler()
    failures = asyncio.run(job_handler.handle_sqs_records(records))

    if failures:
        logger.warning(f"{len(failures)} of {len(records)} job messages will be redelivered")

    return {"batchItemFailures": [{"itemIdentifier": message_id} for message_id in failures]}


def handle_eventbridge_event(event: dict[str, Any]) -> dict[str, Any]:
    """Handle scheduled EventBridge token refresh events.

    Args:
        event: The EventBridge event payload

    Returns:
        Response dict with statusCode and body
    """
    try:
        source = event.get("source", "")
        detail_type = event.get("detail-type", "")

        if detail_type != TOKEN_REFRESH_DETAIL_TYPE:
            logger.warning(f"Unsupported event type: {source}/{detail_type}")
            return {
                "statusCode": 400,
                "body": f"Unsupported event type: {source}/{detail_type}",
            }

        credential_service = get_credential_service()
        if credential_service is None:
            return {
                "statusCode": 503,
                "body": "POS integration is not configured",
            }

        detail = event.get("detail") or {}
        refreshed = asyncio.run(credential_service.refresh_all(detail.get("credentials_id")))

        logger.info(f"Token refresh completed, {refreshed} credentials valid")
        return {
            "statusCode": 200,
            "body": f"Token refresh completed, {refreshed} credentials valid",
        }

    except Exception as e:
        logger.exception(f"Error processing EventBridge event: {e}")
        return {
            "statusCode": 500,
            "body": f"Error processing event: {str(e)}",
        }
