"""Sync job, failure and credential models.

These models represent queued sync jobs, their lifecycle state, failure
records and POS credentials for DynamoDB storage and retrieval, plus the
queue message that carries a job to a worker.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from catalog_sync_service.models.catalog_models import MenuTypeEnum, RowItem


class JobTypeEnum(str, Enum):
    """Kinds of work a sync job can carry."""

    SAVE_CSV_DATA = "SaveCsvData"
    SAVE_CLOVER_DATA = "SaveCloverData"
    TOKEN_REFRESH = "TokenRefresh"
    MENU_TYPE_ADDED = "MenuTypeAdded"
    TAX_RATE_ADDED = "TaxRateAdded"
    TAX_RATE_UPDATED = "TaxRateUpdated"


class SyncJobStatusEnum(str, Enum):
    """Lifecycle states of a sync job."""

    QUEUED = "queued"
    VALIDATING = "validating"
    MERGING = "merging"
    COMMITTED = "committed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncJobStatusEnum.COMMITTED, SyncJobStatusEnum.FAILED)


# A redelivered job that never reached a terminal state restarts at VALIDATING.
ALLOWED_TRANSITIONS: dict[SyncJobStatusEnum, set[SyncJobStatusEnum]] = {
    SyncJobStatusEnum.QUEUED: {SyncJobStatusEnum.VALIDATING, SyncJobStatusEnum.FAILED},
    SyncJobStatusEnum.VALIDATING: {
        SyncJobStatusEnum.VALIDATING,
        SyncJobStatusEnum.MERGING,
        SyncJobStatusEnum.FAILED,
    },
    SyncJobStatusEnum.MERGING: {
        SyncJobStatusEnum.VALIDATING,
        SyncJobStatusEnum.COMMITTED,
        SyncJobStatusEnum.FAILED,
    },
    SyncJobStatusEnum.COMMITTED: set(),
    SyncJobStatusEnum.FAILED: set(),
}


def generate_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


class EntityCounts(BaseModel):
    """Created/updated tally for one entity type."""

    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)


class ImportSummary(BaseModel):
    """Per-entity tally of one import, consumed by the notification sender."""

    items: EntityCounts = Field(default_factory=EntityCounts)
    categories: EntityCounts = Field(default_factory=EntityCounts)
    sub_categories: EntityCounts = Field(default_factory=EntityCounts)
    modifier_groups: EntityCounts = Field(default_factory=EntityCounts)
    modifiers: EntityCounts = Field(default_factory=EntityCounts)

    @property
    def total_rows(self) -> int:
        return self.items.created + self.items.updated


class SyncJobPayload(BaseModel):
    """Queue message carrying one sync job to a worker."""

    job_id: str = Field(default_factory=generate_job_id)
    job_type: JobTypeEnum
    restaurant_id: str = Field(..., min_length=1)
    initiating_user_id: str | None = None
    row_items: list[RowItem] | None = None
    menu_id: str | None = None
    menu_type: MenuTypeEnum | None = None
    tax_rate_id: str | None = None
    credentials_id: str | None = None


class SyncJob(BaseModel):
    """Sync job record tracking a job through its lifecycle.

    Stored in DynamoDB with job_id as partition key and a restaurant_id GSI.
    """

    job_id: str = Field(..., description="Unique job identifier")
    restaurant_id: str = Field(..., description="Restaurant identifier")
    job_type: JobTypeEnum = Field(..., description="Kind of work carried by the job")
    status: SyncJobStatusEnum = Field(..., description="Current lifecycle state")
    created_at: datetime = Field(..., description="Job creation timestamp")
    updated_at: datetime | None = Field(None, description="Timestamp of last transition")
    initiating_user_id: str | None = Field(None, description="User that triggered the job")
    row_count: int | None = Field(None, description="Number of rows carried by the job", ge=0)
    summary: ImportSummary | None = Field(None, description="Tally of the committed import")
    error_details: str | None = Field(None, description="Failure reason for failed jobs")

    @field_validator("row_count")
    @classmethod
    def validate_row_count(cls, v: int | None) -> int | None:
        """Validate that row_count is non-negative."""
        if v is not None and v < 0:
            raise ValueError("row_count must be non-negative")
        return v

    def can_transition(self, new_status: SyncJobStatusEnum) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def transition(self, new_status: SyncJobStatusEnum, at: datetime) -> "SyncJob":
        """Return a copy of the job moved to ``new_status``.

        Raises:
            ValueError: If the transition is not allowed from the current state
        """
        if not self.can_transition(new_status):
            raise ValueError(
                f"Job {self.job_id} cannot move from {self.status.value} to {new_status.value}"
            )
        return self.model_copy(update={"status": new_status, "updated_at": at})

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "job_id": self.job_id,
            "restaurant_id": self.restaurant_id,
            "job_type": self.job_type.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }

        if self.updated_at is not None:
            item["updated_at"] = self.updated_at.isoformat()

        if self.initiating_user_id is not None:
            item["initiating_user_id"] = self.initiating_user_id

        if self.row_count is not None:
            item["row_count"] = self.row_count

        if self.summary is not None:
            item["summary"] = self.summary.model_dump()

        if self.error_details is not None:
            item["error_details"] = self.error_details

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "SyncJob":
        """Create SyncJob from DynamoDB item.

        DynamoDB returns numbers as Decimal, so counts are coerced back to int.

        Args:
            item: DynamoDB item dictionary

        Returns:
            SyncJob: Parsed model instance
        """
        data: dict[str, Any] = {
            "job_id": item["job_id"],
            "restaurant_id": item["restaurant_id"],
            "job_type": JobTypeEnum(item["job_type"]),
            "status": SyncJobStatusEnum(item["status"]),
            "created_at": datetime.fromisoformat(item["created_at"]),
        }

        if "updated_at" in item:
            data["updated_at"] = datetime.fromisoformat(item["updated_at"])

        if "initiating_user_id" in item:
            data["initiating_user_id"] = item["initiating_user_id"]

        if "row_count" in item:
            data["row_count"] = int(item["row_count"])

        if "summary" in item:
            data["summary"] = ImportSummary.model_validate(
                {
                    entity: {key: int(value) for key, value in counts.items()}
                    for entity, counts in item["summary"].items()
                }
            )

        if "error_details" in item:
            data["error_details"] = item["error_details"]

        return cls(**data)


class SyncErrorTypeEnum(str, Enum):
    """Kinds of failure records."""

    JOB_FAILURE = "job_failure"
    UPLOAD_VALIDATION = "upload_validation"


class SyncError(BaseModel):
    """Failure record for a failed job or a rejected spreadsheet upload.

    Records detailed information about failures for operators and for the
    upload issue report. Stored in DynamoDB with (error_id, created_at) as
    composite key.
    """

    error_id: str = Field(..., description="Unique error identifier")
    created_at: datetime = Field(..., description="Error creation timestamp")
    restaurant_id: str = Field(..., description="Restaurant identifier")
    error_type: SyncErrorTypeEnum = Field(..., description="Kind of failure")
    error_details: str = Field(..., description="Error message or details")
    job_id: str | None = Field(None, description="Job that failed, if any")
    job_type: JobTypeEnum | None = Field(None, description="Type of the failed job")
    issues: list[dict[str, Any]] | None = Field(
        None, description="Structured per-row issues of a rejected upload"
    )

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "error_id": self.error_id,
            "created_at": self.created_at.isoformat(),
            "restaurant_id": self.restaurant_id,
            "error_type": self.error_type.value,
            "error_details": self.error_details,
        }

        if self.job_id is not None:
            item["job_id"] = self.job_id

        if self.job_type is not None:
            item["job_type"] = self.job_type.value

        if self.issues is not None:
            item["issues"] = self.issues

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "SyncError":
        """Create SyncError from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            SyncError: Parsed model instance
        """
        data: dict[str, Any] = {
            "error_id": item["error_id"],
            "created_at": datetime.fromisoformat(item["created_at"]),
            "restaurant_id": item["restaurant_id"],
            "error_type": SyncErrorTypeEnum(item["error_type"]),
            "error_details": item["error_details"],
        }

        if "job_id" in item:
            data["job_id"] = item["job_id"]

        if "job_type" in item:
            data["job_type"] = JobTypeEnum(item["job_type"])

        if "issues" in item:
            data["issues"] = item["issues"]

        return cls(**data)


class PosCredential(BaseModel):
    """Encrypted OAuth credentials for a POS integration.

    Token expirations are epoch seconds as returned by the vendor. Stored in
    DynamoDB with credentials_id as partition key and a restaurant_id GSI.
    """

    credentials_id: str = Field(..., description="Credential record identifier")
    restaurant_id: str = Field(..., description="Restaurant identifier")
    platform: str = Field(default="clover", description="POS platform name")
    merchant_id: str = Field(..., description="Merchant identifier at the vendor")
    access_token: str = Field(..., description="Encrypted access token")
    access_token_expiration: int = Field(default=0, ge=0)
    refresh_token: str = Field(..., description="Encrypted refresh token")
    refresh_token_expiration: int = Field(default=0, ge=0)

    def to_dynamodb_item(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "PosCredential":
        data = dict(item)
        data["access_token_expiration"] = int(data.get("access_token_expiration", 0))
        data["refresh_token_expiration"] = int(data.get("refresh_token_expiration", 0))
        return cls(**data)
