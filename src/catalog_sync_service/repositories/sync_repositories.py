"""DynamoDB repository classes for sync jobs, failure records and credentials.

These repositories provide CRUD operations for job records, failure records and
POS credentials. We use simple return values (None/False) for expected failures
rather than raising exceptions; callers decide whether a miss is fatal.
"""

import logging
from datetime import datetime

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from catalog_sync_service.models.sync_models import (
    PosCredential,
    SyncError,
    SyncErrorTypeEnum,
    SyncJob,
    SyncJobStatusEnum,
)

logger = logging.getLogger(__name__)


class SyncJobRepository:
    """Repository for sync job records.

    Manages job records in DynamoDB with job_id as partition key and a
    restaurant_id Global Secondary Index.
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def save_job(self, job: SyncJob) -> bool:
        """Save or replace a job record.

        Args:
            job: SyncJob to save

        Returns:
            bool: True if save succeeded, False otherwise
        """
        try:
            self.table.put_item(Item=job.to_dynamodb_item())
            return True

        except ClientError as e:
            logger.error(f"Failed to save sync job: {e}")  # pragma: no cover
            return False

    def get_job(self, job_id: str) -> SyncJob | None:
        """Retrieve a job record by ID.

        Args:
            job_id: Job identifier

        Returns:
            SyncJob if found, None otherwise
        """
        try:
            response = self.table.get_item(Key={"job_id": job_id})

            if "Item" not in response:
                return None

            return SyncJob.from_dynamodb_item(response["Item"])

        except ClientError as e:
            logger.error(f"Failed to get sync job: {e}")  # pragma: no cover
            return None

    def update_status(
        self,
        job_id: str,
        status: SyncJobStatusEnum,
        updated_at: datetime,
        error_details: str | None = None,
    ) -> bool:
        """Update the lifecycle state of a job.

        Args:
            job_id: Job identifier
            status: New status
            updated_at: Transition timestamp
            error_details: Optional failure reason

        Returns:
            bool: True if update succeeded, False otherwise
        """
        update_expression = "SET #status = :status, updated_at = :updated_at"
        values: dict[str, str] = {
            ":status": status.value,
            ":updated_at": updated_at.isoformat(),
        }
        if error_details is not None:
            update_expression += ", error_details = :error_details"
            values[":error_details"] = error_details

        try:
            self.table.update_item(
                Key={"job_id": job_id},
                UpdateExpression=update_expression,
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
            )
            return True

        except ClientError as e:
            logger.error(f"Failed to update sync job status: {e}")  # pragma: no cover
            return False

    def list_jobs_for_restaurant(self, restaurant_id: str, limit: int = 50) -> list[SyncJob]:
        """List recent jobs for a restaurant.

        Uses a Global Secondary Index on restaurant_id.

        Args:
            restaurant_id: Restaurant identifier
            limit: Maximum number of jobs to return

        Returns:
            list: List of SyncJob objects (empty list if none found)
        """
        try:
            response = self.table.query(
                IndexName="restaurant_id-index",
                KeyConditionExpression="restaurant_id = :rid",
                ExpressionAttributeValues={":rid": restaurant_id},
                Limit=limit,
                ScanIndexForward=False,  # Most recent first
            )

            return [SyncJob.from_dynamodb_item(item) for item in response.get("Items", [])]

        except ClientError as e:
            logger.error(f"Failed to list sync jobs: {e}")  # pragma: no cover
            return []


class SyncErrorRepository:
    """Repository for failure records.

    Manages failure records in DynamoDB with composite key (error_id, created_at).
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def save_error(self, error: SyncError) -> bool:
        """Save a failure record.

        Args:
            error: SyncError to save

        Returns:
            bool: True if save succeeded, False otherwise
        """
        try:
            self.table.put_item(Item=error.to_dynamodb_item())
            return True

        except ClientError as e:
            logger.error(f"Failed to save sync error: {e}")  # pragma: no cover
            return False

    def get_error(self, error_id: str, created_at: datetime) -> SyncError | None:
        """Retrieve a failure record by ID and creation timestamp.

        Args:
            error_id: Error identifier
            created_at: Error creation timestamp

        Returns:
            SyncError if found, None otherwise
        """
        try:
            response = self.table.get_item(
                Key={"error_id": error_id, "created_at": created_at.isoformat()}
            )

            if "Item" not in response:
                return None

            return SyncError.from_dynamodb_item(response["Item"])

        except ClientError as e:
            logger.error(f"Failed to get sync error: {e}")  # pragma: no cover
            return None

    def list_errors_for_restaurant(
        self,
        restaurant_id: str,
        limit: int = 50,
        error_type: SyncErrorTypeEnum | None = None,
    ) -> list[SyncError]:
        """List recent failure records for a restaurant.

        Uses a Global Secondary Index on restaurant_id.

        Args:
            restaurant_id: Restaurant identifier
            limit: Maximum number of records to return
            error_type: Optional filter on the kind of failure

        Returns:
            list: List of SyncError objects (empty list if none found)
        """
        query_kwargs: dict = {
            "IndexName": "restaurant_id-index",
            "KeyConditionExpression": "restaurant_id = :rid",
            "ExpressionAttributeValues": {":rid": restaurant_id},
            "Limit": limit,
            "ScanIndexForward": False,  # Most recent first
        }
        if error_type is not None:
            query_kwargs["FilterExpression"] = "error_type = :error_type"
            query_kwargs["ExpressionAttributeValues"][":error_type"] = error_type.value

        try:
            response = self.table.query(**query_kwargs)

            return [SyncError.from_dynamodb_item(item) for item in response.get("Items", [])]

        except ClientError as e:
            logger.error(f"Failed to list sync errors: {e}")  # pragma: no cover
            return []


class PosCredentialRepository:
    """Repository for encrypted POS credentials.

    Manages credential records in DynamoDB with credentials_id as partition key
    and a restaurant_id Global Secondary Index.
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def get_credential(self, credentials_id: str) -> PosCredential | None:
        """Retrieve a credential record by ID.

        Args:
            credentials_id: Credential record identifier

        Returns:
            PosCredential if found, None otherwise
        """
        try:
            response = self.table.get_item(Key={"credentials_id": credentials_id})

            if "Item" not in response:
                return None

            return PosCredential.from_dynamodb_item(response["Item"])

        except ClientError as e:
            logger.error(f"Failed to get POS credential: {e}")  # pragma: no cover
            return None

    def get_credential_for_restaurant(self, restaurant_id: str) -> PosCredential | None:
        """Retrieve the credential record of a restaurant.

        Args:
            restaurant_id: Restaurant identifier

        Returns:
            PosCredential if found, None otherwise
        """
        try:
            response = self.table.query(
                IndexName="restaurant_id-index",
                KeyConditionExpression="restaurant_id = :rid",
                ExpressionAttributeValues={":rid": restaurant_id},
                Limit=1,
            )

            items = response.get("Items", [])
            if not items:
                return None

            return PosCredential.from_dynamodb_item(items[0])

        except ClientError as e:
            logger.error(f"Failed to query POS credential: {e}")  # pragma: no cover
            return None

    def save_credential(self, credential: PosCredential) -> bool:
        """Save or replace a credential record.

        Args:
            credential: PosCredential to save

        Returns:
            bool: True if save succeeded, False otherwise
        """
        try:
            self.table.put_item(Item=credential.to_dynamodb_item())
            return True

        except ClientError as e:
            logger.error(f"Failed to save POS credential: {e}")  # pragma: no cover
            return False

    def list_credentials(self) -> list[PosCredential]:
        """List every credential record (used by the scheduled token refresh).

        Returns:
            list: List of PosCredential objects (empty list if none found)
        """
        credentials: list[PosCredential] = []
        scan_kwargs: dict = {}
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                credentials.extend(
                    PosCredential.from_dynamodb_item(item) for item in response.get("Items", [])
                )
                if "LastEvaluatedKey" not in response:
                    return credentials
                scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        except ClientError as e:
            logger.error(f"Failed to scan POS credentials: {e}")  # pragma: no cover
            return []
