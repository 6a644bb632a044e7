"""Queue job handler driving sync jobs through their lifecycle."""

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from catalog_sync_service.adapters.base_adapter import PosAdapter
from catalog_sync_service.exceptions import CatalogSyncError, ExternalServiceError, ValidationError
from catalog_sync_service.models.catalog_models import RowItem
from catalog_sync_service.models.sync_models import (
    ImportSummary,
    JobTypeEnum,
    SyncJob,
    SyncJobPayload,
    SyncJobStatusEnum,
)
from catalog_sync_service.observability import traced
from catalog_sync_service.observability.metrics import (
    record_job_committed,
    record_job_duration,
    record_job_failed,
)
from catalog_sync_service.repositories.masters_repository import MastersRepository
from catalog_sync_service.repositories.sync_repositories import SyncJobRepository
from catalog_sync_service.services.catalog_import_service import CatalogImportService
from catalog_sync_service.services.credential_service import CredentialService
from catalog_sync_service.services.error_service import ErrorService
from catalog_sync_service.services.job_queue import parse_job_message
from catalog_sync_service.services.notification_service import NotificationSender
from catalog_sync_service.services.propagation_service import (
    NewMenuTypePropagator,
    TaxRatePropagator,
)
from catalog_sync_service.services.row_validator import RowValidator

logger = logging.getLogger(__name__)

IMPORT_JOB_TYPES = (JobTypeEnum.SAVE_CSV_DATA, JobTypeEnum.SAVE_CLOVER_DATA)


class JobHandler:
    """Runs queued sync jobs: queued -> validating -> merging -> committed | failed.

    Delivery is at-least-once. A redelivered job that already reached a
    terminal state is acknowledged without running again; one that did not
    restarts at validating. Business failures (CatalogSyncError) end the job
    as failed and are reported through the notification sender. Any other
    exception propagates so the queue redelivers the message.
    """

    def __init__(
        self,
        job_repository: SyncJobRepository,
        masters_repository: MastersRepository,
        import_service: CatalogImportService,
        menu_type_propagator: NewMenuTypePropagator,
        tax_rate_propagator: TaxRatePropagator,
        error_service: ErrorService,
        notification_sender: NotificationSender,
        credential_service: CredentialService | None = None,
        pos_adapter: PosAdapter | None = None,
    ) -> None:
        """Initialize the job handler.

        Args:
            job_repository: Repository for job records
            masters_repository: Master registries (row ceiling, option registry)
            import_service: Service merging import batches
            menu_type_propagator: Worker for new order channels
            tax_rate_propagator: Worker for tax-rate changes
            error_service: Service recording job failures
            notification_sender: Sender for summaries and failure notices
            credential_service: POS credential store, required for POS fetches
            pos_adapter: POS adapter, required for POS fetches
        """
        self.job_repository = job_repository
        self.masters_repository = masters_repository
        self.import_service = import_service
        self.menu_type_propagator = menu_type_propagator
        self.tax_rate_propagator = tax_rate_propagator
        self.error_service = error_service
        self.notification_sender = notification_sender
        self.credential_service = credential_service
        self.pos_adapter = pos_adapter

    async def handle_message(self, body: str) -> SyncJobStatusEnum | None:
        """Parse and run one queue message.

        Returns:
            The job's final status, or None for an unparseable message (which
            is dropped rather than redelivered forever)
        """
        try:
            payload = parse_job_message(body)
        except PydanticValidationError as e:
            logger.error(f"Dropping malformed job message: {e}")
            return None
        return await self.handle_job(payload)

    async def handle_sqs_records(self, records: list[dict[str, Any]]) -> list[str]:
        """Run a Lambda SQS batch.

        Returns:
            Message ids that must be redelivered (for partial batch responses)
        """
        failures = []
        for record in records:
            try:
                await self.handle_message(record["body"])
            except Exception as e:
                logger.exception(f"Job message {record.get('messageId')} will be redelivered: {e}")
                failures.append(record["messageId"])
        return failures

    @traced("job_handler.handle_job")
    async def handle_job(self, payload: SyncJobPayload) -> SyncJobStatusEnum:
        """Run one job to commit or failure.

        Args:
            payload: The job payload taken from the queue

        Returns:
            The job's terminal status
        """
        job = self._load_job(payload)
        if job.status.is_terminal:
            logger.info(f"Job {job.job_id} already {job.status.value}, acknowledging redelivery")
            return job.status

        job = self._transition(job, SyncJobStatusEnum.VALIDATING)
        started = time.monotonic()

        try:
            rows = await self._validate(payload)
            job = self._transition(job, SyncJobStatusEnum.MERGING)
            summary = await self._merge(payload, rows)
        except CatalogSyncError as e:
            await self._fail(job, e)
            return SyncJobStatusEnum.FAILED
        finally:
            record_job_duration(payload.job_type.value, time.monotonic() - started)

        committed = job.transition(SyncJobStatusEnum.COMMITTED, datetime.now(UTC))
        if summary is not None:
            committed = committed.model_copy(
                update={"summary": summary, "row_count": summary.total_rows}
            )
        self.job_repository.save_job(committed)
        record_job_committed(payload.job_type.value)

        if summary is not None:
            await self.notification_sender.send_import_summary(committed, summary)

        logger.info(f"Job {job.job_id} ({payload.job_type.value}) committed")
        return SyncJobStatusEnum.COMMITTED

    async def _validate(self, payload: SyncJobPayload) -> list[RowItem] | None:
        """Check the payload and gather import rows before anything is merged."""
        if payload.job_type in IMPORT_JOB_TYPES:
            return await self._rows_for_import(payload)

        if payload.job_type == JobTypeEnum.TOKEN_REFRESH:
            if self.credential_service is None:
                raise ExternalServiceError("POS integration is not configured")
        elif payload.job_type == JobTypeEnum.MENU_TYPE_ADDED:
            if payload.menu_type is None:
                raise ValidationError("MenuTypeAdded job requires a menu type")
        elif payload.tax_rate_id is None:
            raise ValidationError(f"{payload.job_type.value} job requires a tax rate id")
        return None

    async def _merge(
        self, payload: SyncJobPayload, rows: list[RowItem] | None
    ) -> ImportSummary | None:
        if payload.job_type in IMPORT_JOB_TYPES:
            return await asyncio.to_thread(
                self.import_service.apply_batch,
                payload.restaurant_id,
                rows or [],
                payload.initiating_user_id,
                payload.menu_id,
            )

        if payload.job_type == JobTypeEnum.TOKEN_REFRESH:
            # Refresh failures are logged by the credential service and do not fail the job
            if self.credential_service is not None:
                await self.credential_service.refresh_all(payload.credentials_id)
        elif payload.job_type == JobTypeEnum.MENU_TYPE_ADDED:
            await asyncio.to_thread(
                self.menu_type_propagator.propagate,
                payload.restaurant_id,
                payload.menu_type,
                payload.menu_id,
            )
        else:
            await asyncio.to_thread(
                self.tax_rate_propagator.propagate,
                payload.restaurant_id,
                payload.tax_rate_id,
                payload.job_type == JobTypeEnum.TAX_RATE_ADDED,
            )
        return None

    async def _rows_for_import(self, payload: SyncJobPayload) -> list[RowItem]:
        if payload.row_items is not None:
            rows = payload.row_items
        elif payload.job_type == JobTypeEnum.SAVE_CLOVER_DATA:
            rows = await self._fetch_pos_rows(payload)
        else:
            raise ValidationError("Import job carries no rows")

        max_rows = self.masters_repository.get_max_rows()
        if len(rows) > max_rows:
            logger.warning(f"Truncating job {payload.job_id} from {len(rows)} to {max_rows} rows")
            rows = rows[:max_rows]
        return rows

    async def _fetch_pos_rows(self, payload: SyncJobPayload) -> list[RowItem]:
        if self.credential_service is None or self.pos_adapter is None:
            raise ExternalServiceError("POS integration is not configured")

        merchant_id, access_token = await self.credential_service.get_access_token(
            payload.restaurant_id, payload.credentials_id
        )
        inventory = await self.pos_adapter.fetch_inventory(merchant_id, access_token)
        if inventory is None:
            raise ExternalServiceError(
                f"Failed to fetch inventory from {self.pos_adapter.platform_name}",
                details={"restaurant_id": payload.restaurant_id},
            )

        validator = RowValidator(self.masters_repository.load_context(payload.restaurant_id))
        return validator.validate_pos_items(inventory)

    async def _fail(self, job: SyncJob, error: CatalogSyncError) -> None:
        error_type = type(error).__name__
        logger.error(f"Job {job.job_id} ({job.job_type.value}) failed: {error_type}: {error.message}")

        failed = job.transition(SyncJobStatusEnum.FAILED, datetime.now(UTC))
        self.job_repository.save_job(failed.model_copy(update={"error_details": error.message}))

        await self.error_service.record_job_failure(job.restaurant_id, job.job_id, job.job_type, error)
        await self.notification_sender.send_job_failure(failed, error_type, error.message)
        record_job_failed(job.job_type.value, error_type)

    def _load_job(self, payload: SyncJobPayload) -> SyncJob:
        job = self.job_repository.get_job(payload.job_id)
        if job is not None:
            return job

        # Jobs published without a record (e.g. scheduled refreshes) get one now
        job = SyncJob(
            job_id=payload.job_id,
            restaurant_id=payload.restaurant_id,
            job_type=payload.job_type,
            status=SyncJobStatusEnum.QUEUED,
            created_at=datetime.now(UTC),
            initiating_user_id=payload.initiating_user_id,
        )
        self.job_repository.save_job(job)
        return job

    def _transition(self, job: SyncJob, status: SyncJobStatusEnum) -> SyncJob:
        moved = job.transition(status, datetime.now(UTC))
        self.job_repository.update_status(job.job_id, status, moved.updated_at or datetime.now(UTC))
        return moved
