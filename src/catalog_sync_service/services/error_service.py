"""Error service for recording job failures and rejected uploads."""

import logging
import uuid
from datetime import UTC, datetime

from catalog_sync_service.exceptions import CatalogSyncError
from catalog_sync_service.models.sync_models import JobTypeEnum, SyncError, SyncErrorTypeEnum
from catalog_sync_service.repositories.sync_repositories import SyncErrorRepository
from catalog_sync_service.services.row_validator import RowIssue

logger = logging.getLogger(__name__)


class ErrorService:
    """Service for managing failure records.

    Failed jobs and rejected spreadsheet uploads are recorded for operators
    and for the per-restaurant upload issue report.
    """

    def __init__(self, error_repository: SyncErrorRepository) -> None:
        """Initialize the ErrorService.

        Args:
            error_repository: Repository for storing failure records
        """
        self.error_repository = error_repository

    async def record_job_failure(
        self,
        restaurant_id: str,
        job_id: str,
        job_type: JobTypeEnum,
        error: CatalogSyncError,
    ) -> str | None:
        """Record the failure of a running job.

        Args:
            restaurant_id: The restaurant the job belongs to
            job_id: The failed job
            job_type: Type of the failed job
            error: The error that failed the job

        Returns:
            The error ID if saved successfully, None otherwise
        """
        record = SyncError(
            error_id=f"err_{uuid.uuid4().hex[:12]}",
            created_at=datetime.now(UTC),
            restaurant_id=restaurant_id,
            error_type=SyncErrorTypeEnum.JOB_FAILURE,
            error_details=f"{type(error).__name__}: {error.message}",
            job_id=job_id,
            job_type=job_type,
        )

        success = self.error_repository.save_error(record)
        return record.error_id if success else None

    async def record_upload_issues(
        self, restaurant_id: str, message: str, issues: list[RowIssue]
    ) -> str | None:
        """Record every issue found in a rejected spreadsheet upload.

        Args:
            restaurant_id: The restaurant that uploaded the spreadsheet
            message: The error returned to the caller
            issues: Every row/cell issue found in the upload

        Returns:
            The error ID if saved successfully, None otherwise
        """
        record = SyncError(
            error_id=f"err_{uuid.uuid4().hex[:12]}",
            created_at=datetime.now(UTC),
            restaurant_id=restaurant_id,
            error_type=SyncErrorTypeEnum.UPLOAD_VALIDATION,
            error_details=message,
            job_type=JobTypeEnum.SAVE_CSV_DATA,
            issues=[issue.to_dict() for issue in issues],
        )

        success = self.error_repository.save_error(record)
        if success:
            logger.info(f"Recorded {len(issues)} upload issues for restaurant {restaurant_id}")
        return record.error_id if success else None

    async def get_errors_for_restaurant(
        self,
        restaurant_id: str,
        error_type: SyncErrorTypeEnum | None = None,
        limit: int = 50,
    ) -> list[SyncError]:
        """Get failure records for a restaurant, optionally filtered by kind.

        Returns:
            List of SyncError objects, empty list if none found
        """
        return self.error_repository.list_errors_for_restaurant(
            restaurant_id=restaurant_id,
            limit=limit,
            error_type=error_type,
        )
