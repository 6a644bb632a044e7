"""Entry points that validate requests and queue sync jobs.

Nothing here waits for a merge: each call checks the caller's capability,
validates what can be validated synchronously, records a queued job and
publishes it. Completion is reported later by the job handler.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from catalog_sync_service.auth.permissions import PermissionTypeEnum, require_permission
from catalog_sync_service.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    TransactionError,
    ValidationError,
)
from catalog_sync_service.models.catalog_models import MenuTypeEnum, RowItem
from catalog_sync_service.models.sync_models import (
    JobTypeEnum,
    SyncJob,
    SyncJobPayload,
    SyncJobStatusEnum,
)
from catalog_sync_service.repositories.masters_repository import MastersRepository
from catalog_sync_service.repositories.sync_repositories import SyncJobRepository
from catalog_sync_service.services.error_service import ErrorService
from catalog_sync_service.services.job_queue import JobQueuePublisher
from catalog_sync_service.services.row_validator import RowValidator, expected_headers

logger = logging.getLogger(__name__)


class CatalogSyncService:
    """Facade for enqueuing catalog imports, POS syncs and propagations."""

    def __init__(
        self,
        masters_repository: MastersRepository,
        job_repository: SyncJobRepository,
        publisher: JobQueuePublisher,
        error_service: ErrorService,
    ) -> None:
        """Initialize the CatalogSyncService.

        Args:
            masters_repository: Master registries and restaurant configuration
            job_repository: Repository for job records
            publisher: Job queue publisher
            error_service: Service recording rejected uploads
        """
        self.masters_repository = masters_repository
        self.job_repository = job_repository
        self.publisher = publisher
        self.error_service = error_service

    def get_spreadsheet_headers(self) -> list[str]:
        """Return the header row a spreadsheet upload must carry."""
        return expected_headers([option.type for option in self.masters_repository.get_item_options()])

    async def enqueue_catalog_import(
        self,
        restaurant_id: str,
        header: list[Any],
        rows: list[list[Any]],
        permissions: list[str],
        user_id: str | None = None,
        menu_id: str | None = None,
    ) -> SyncJob:
        """Validate a spreadsheet upload and queue it for merging.

        On a validation failure every issue in the upload is recorded before
        the first one is raised.

        Raises:
            AuthorizationError: If the caller lacks the Menu capability
            NotFoundError: If the restaurant or target menu does not exist
            ValidationError: On a header mismatch or an invalid row
            ConflictError: When two rows share an item name
        """
        require_permission(permissions, PermissionTypeEnum.MENU)
        self._require_restaurant(restaurant_id, menu_id)

        validator = RowValidator(self.masters_repository.load_context(restaurant_id))
        try:
            row_items = validator.validate_spreadsheet(header, rows)
        except (ValidationError, ConflictError) as e:
            issues = validator.collect_issues(header, rows)
            await self.error_service.record_upload_issues(restaurant_id, e.message, issues)
            raise

        return self._enqueue(
            SyncJobPayload(
                job_type=JobTypeEnum.SAVE_CSV_DATA,
                restaurant_id=restaurant_id,
                initiating_user_id=user_id,
                row_items=row_items,
                menu_id=menu_id,
            )
        )

    async def enqueue_pos_sync(
        self,
        restaurant_id: str,
        items: list[dict[str, Any]] | None,
        permissions: list[str],
        user_id: str | None = None,
        credentials_id: str | None = None,
    ) -> SyncJob:
        """Queue a POS import.

        When ``items`` is None the worker fetches the inventory from the vendor
        at run time using the restaurant's stored credentials.

        Raises:
            AuthorizationError: If the caller lacks the Integrations or Menu capability
            ValidationError: If a supplied item is invalid
            ConflictError: When two supplied items share a name
        """
        require_permission(permissions, PermissionTypeEnum.INTEGRATIONS, PermissionTypeEnum.MENU)
        self._require_restaurant(restaurant_id)

        row_items: list[RowItem] | None = None
        if items is not None:
            validator = RowValidator(self.masters_repository.load_context(restaurant_id))
            row_items = validator.validate_pos_items(items)

        return self._enqueue(
            SyncJobPayload(
                job_type=JobTypeEnum.SAVE_CLOVER_DATA,
                restaurant_id=restaurant_id,
                initiating_user_id=user_id,
                row_items=row_items,
                credentials_id=credentials_id,
            )
        )

    async def on_menu_created(
        self,
        restaurant_id: str,
        menu_type: MenuTypeEnum,
        menu_id: str,
        permissions: list[str],
        user_id: str | None = None,
    ) -> SyncJob:
        """Queue NewMenuTypePropagator for a newly created menu.

        Raises:
            AuthorizationError: If the caller lacks the Menu capability
            NotFoundError: If the menu does not exist for the restaurant
        """
        require_permission(permissions, PermissionTypeEnum.MENU)
        self._require_restaurant(restaurant_id, menu_id)

        return self._enqueue(
            SyncJobPayload(
                job_type=JobTypeEnum.MENU_TYPE_ADDED,
                restaurant_id=restaurant_id,
                initiating_user_id=user_id,
                menu_type=menu_type,
                menu_id=menu_id,
            )
        )

    async def on_tax_rate_changed(
        self,
        restaurant_id: str,
        tax_rate_id: str,
        is_new: bool,
        permissions: list[str],
        user_id: str | None = None,
    ) -> SyncJob:
        """Queue TaxRatePropagator for an added or updated tax rate.

        Raises:
            AuthorizationError: If the caller lacks the Update Tax or Menu capability
        """
        require_permission(permissions, PermissionTypeEnum.UPDATE_TAX, PermissionTypeEnum.MENU)
        self._require_restaurant(restaurant_id)

        return self._enqueue(
            SyncJobPayload(
                job_type=JobTypeEnum.TAX_RATE_ADDED if is_new else JobTypeEnum.TAX_RATE_UPDATED,
                restaurant_id=restaurant_id,
                initiating_user_id=user_id,
                tax_rate_id=tax_rate_id,
            )
        )

    async def enqueue_token_refresh(self, restaurant_id: str, credentials_id: str) -> SyncJob:
        """Queue a refresh of one restaurant's POS credentials."""
        return self._enqueue(
            SyncJobPayload(
                job_type=JobTypeEnum.TOKEN_REFRESH,
                restaurant_id=restaurant_id,
                credentials_id=credentials_id,
            )
        )

    def get_job(self, job_id: str) -> SyncJob:
        job = self.job_repository.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", details={"job_id": job_id})
        return job

    def list_jobs(self, restaurant_id: str, limit: int = 50) -> list[SyncJob]:
        return self.job_repository.list_jobs_for_restaurant(restaurant_id, limit=limit)

    def _require_restaurant(self, restaurant_id: str, menu_id: str | None = None) -> None:
        if not self.masters_repository.restaurant_exists(restaurant_id):
            raise NotFoundError(
                f"Restaurant {restaurant_id} not found", details={"restaurant_id": restaurant_id}
            )
        if menu_id is not None and not self.masters_repository.menu_exists(restaurant_id, menu_id):
            raise NotFoundError(
                "Please select a valid menu to continue!",
                details={"restaurant_id": restaurant_id, "menu_id": menu_id},
            )

    def _enqueue(self, payload: SyncJobPayload) -> SyncJob:
        now = datetime.now(UTC)
        job = SyncJob(
            job_id=payload.job_id,
            restaurant_id=payload.restaurant_id,
            job_type=payload.job_type,
            status=SyncJobStatusEnum.QUEUED,
            created_at=now,
            initiating_user_id=payload.initiating_user_id,
            row_count=len(payload.row_items) if payload.row_items is not None else None,
        )

        if not self.job_repository.save_job(job):
            raise TransactionError("Failed to record sync job", details={"job_id": job.job_id})

        if not self.publisher.publish(payload):
            self.job_repository.update_status(
                job.job_id,
                SyncJobStatusEnum.FAILED,
                datetime.now(UTC),
                error_details="Job could not be queued",
            )
            raise ExternalServiceError("Failed to queue sync job", details={"job_id": job.job_id})

        logger.info(
            f"Queued {payload.job_type.value} job {job.job_id} for restaurant {payload.restaurant_id}"
        )
        return job
