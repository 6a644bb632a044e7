"""Notification senders for asynchronous job outcomes.

Callers of the API only receive an "accepted" acknowledgement, so import
summaries and job failures are reported here instead.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from catalog_sync_service.models.sync_models import ImportSummary, SyncJob

logger = logging.getLogger(__name__)


class NotificationSender(ABC):
    """Delivers post-job notices. Returns False on delivery failure, never raises."""

    @abstractmethod
    async def send_import_summary(self, job: SyncJob, summary: ImportSummary) -> bool:
        """Report the created/updated counts of a committed import."""
        pass

    @abstractmethod
    async def send_job_failure(self, job: SyncJob, error_type: str, message: str) -> bool:
        """Report a job that ended in the failed state."""
        pass


def build_summary_payload(job: SyncJob, summary: ImportSummary) -> dict[str, Any]:
    return {
        "event": "import.completed",
        "job_id": job.job_id,
        "job_type": job.job_type.value,
        "restaurant_id": job.restaurant_id,
        "user_id": job.initiating_user_id,
        "added_items": summary.items.created,
        "updated_items": summary.items.updated,
        "added_categories": summary.categories.created,
        "added_sub_categories": summary.sub_categories.created,
        "summary": summary.model_dump(),
    }


def build_failure_payload(job: SyncJob, error_type: str, message: str) -> dict[str, Any]:
    return {
        "event": "job.failed",
        "job_id": job.job_id,
        "job_type": job.job_type.value,
        "restaurant_id": job.restaurant_id,
        "user_id": job.initiating_user_id,
        "error_type": error_type,
        "error_message": message,
    }


class LoggingNotificationSender(NotificationSender):
    """Writes notices to the structured log only."""

    async def send_import_summary(self, job: SyncJob, summary: ImportSummary) -> bool:
        logger.info("Import summary", extra=build_summary_payload(job, summary))
        return True

    async def send_job_failure(self, job: SyncJob, error_type: str, message: str) -> bool:
        logger.warning("Job failed", extra=build_failure_payload(job, error_type, message))
        return True


class WebhookNotificationSender(NotificationSender):
    """Posts notices as JSON to a configured webhook URL."""

    def __init__(self, webhook_url: str, timeout: float = 10.0) -> None:
        """Initialize the webhook sender.

        Args:
            webhook_url: URL receiving POSTed notices
            timeout: Request timeout in seconds
        """
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def send_import_summary(self, job: SyncJob, summary: ImportSummary) -> bool:
        return await self._post(build_summary_payload(job, summary))

    async def send_job_failure(self, job: SyncJob, error_type: str, message: str) -> bool:
        return await self._post(build_failure_payload(job, error_type, message))

    async def _post(self, payload: dict[str, Any]) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Notification webhook failed for job {payload['job_id']}: {e}")
            return False

        if response.status_code >= 300:
            logger.error(
                f"Notification webhook returned {response.status_code} for job {payload['job_id']}"
            )
            return False
        return True
