"""Unit tests for sync repository classes."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from catalog_sync_service.models.sync_models import (
    JobTypeEnum,
    PosCredential,
    SyncError,
    SyncErrorTypeEnum,
    SyncJob,
    SyncJobStatusEnum,
)
from catalog_sync_service.repositories.sync_repositories import (
    PosCredentialRepository,
    SyncErrorRepository,
    SyncJobRepository,
)


def client_error(operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": "InternalServerError", "Message": "Server error"}}, operation
    )


@pytest.fixture
def mock_dynamodb() -> MagicMock:
    """Create a mock DynamoDB resource."""
    return MagicMock()


@pytest.mark.unit
class TestSyncJobRepository:
    """Test suite for SyncJobRepository."""

    @pytest.fixture
    def repository(self, mock_dynamodb: MagicMock) -> SyncJobRepository:
        """Create a SyncJobRepository with mocked DynamoDB."""
        return SyncJobRepository(dynamodb_resource=mock_dynamodb, table_name="test-sync-jobs")

    @pytest.fixture
    def job(self) -> SyncJob:
        return SyncJob(
            job_id="job_123",
            restaurant_id="rest_123",
            job_type=JobTypeEnum.SAVE_CSV_DATA,
            status=SyncJobStatusEnum.QUEUED,
            created_at=datetime.now(UTC),
        )

    def test_repository_initialization(self, mock_dynamodb: MagicMock) -> None:
        """Test that repository initializes correctly."""
        repo = SyncJobRepository(dynamodb_resource=mock_dynamodb, table_name="test-table")
        assert repo.table_name == "test-table"
        mock_dynamodb.Table.assert_called_once_with("test-table")

    def test_save_job_success(
        self, repository: SyncJobRepository, mock_dynamodb: MagicMock, job: SyncJob
    ) -> None:
        """Test successfully saving a job."""
        result = repository.save_job(job)

        assert result is True
        mock_dynamodb.Table.return_value.put_item.assert_called_once_with(
            Item=job.to_dynamodb_item()
        )

    def test_save_job_dynamodb_error(
        self, repository: SyncJobRepository, mock_dynamodb: MagicMock, job: SyncJob
    ) -> None:
        """Test that save returns False on DynamoDB error."""
        mock_dynamodb.Table.return_value.put_item.side_effect = client_error("PutItem")

        assert repository.save_job(job) is False

    def test_get_job_success(
        self, repository: SyncJobRepository, mock_dynamodb: MagicMock, job: SyncJob
    ) -> None:
        """Test successfully retrieving a job."""
        mock_dynamodb.Table.return_value.get_item.return_value = {"Item": job.to_dynamodb_item()}

        result = repository.get_job("job_123")

        assert result == job
        mock_dynamodb.Table.return_value.get_item.assert_called_once_with(
            Key={"job_id": "job_123"}
        )

    def test_get_job_not_found(self, repository: SyncJobRepository, mock_dynamodb: MagicMock) -> None:
        """Test retrieving non-existent job returns None."""
        mock_dynamodb.Table.return_value.get_item.return_value = {}

        assert repository.get_job("job_missing") is None

    def test_get_job_dynamodb_error(
        self, repository: SyncJobRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test that DynamoDB errors return None."""
        mock_dynamodb.Table.return_value.get_item.side_effect = client_error("GetItem")

        assert repository.get_job("job_123") is None

    def test_update_status(self, repository: SyncJobRepository, mock_dynamodb: MagicMock) -> None:
        """Test status updates write the new state and timestamp."""
        at = datetime(2026, 1, 15, 10, 0, tzinfo=UTC)

        result = repository.update_status("job_123", SyncJobStatusEnum.MERGING, at)

        assert result is True
        call_kwargs = mock_dynamodb.Table.return_value.update_item.call_args.kwargs
        assert call_kwargs["Key"] == {"job_id": "job_123"}
        assert call_kwargs["UpdateExpression"] == "SET #status = :status, updated_at = :updated_at"
        assert call_kwargs["ExpressionAttributeValues"] == {
            ":status": "merging",
            ":updated_at": at.isoformat(),
        }

    def test_update_status_with_error_details(
        self, repository: SyncJobRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test failure details are written alongside the status."""
        repository.update_status(
            "job_123", SyncJobStatusEnum.FAILED, datetime.now(UTC), error_details="boom"
        )

        call_kwargs = mock_dynamodb.Table.return_value.update_item.call_args.kwargs
        assert call_kwargs["UpdateExpression"].endswith(", error_details = :error_details")
        assert call_kwargs["ExpressionAttributeValues"][":error_details"] == "boom"

    def test_update_status_dynamodb_error(
        self, repository: SyncJobRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test that update returns False on DynamoDB error."""
        mock_dynamodb.Table.return_value.update_item.side_effect = client_error("UpdateItem")

        assert repository.update_status("job_123", SyncJobStatusEnum.FAILED, datetime.now(UTC)) is False

    def test_list_jobs_for_restaurant(
        self, repository: SyncJobRepository, mock_dynamodb: MagicMock, job: SyncJob
    ) -> None:
        """Test listing jobs queries the restaurant index."""
        mock_dynamodb.Table.return_value.query.return_value = {"Items": [job.to_dynamodb_item()]}

        jobs = repository.list_jobs_for_restaurant("rest_123", limit=10)

        assert jobs == [job]
        call_kwargs = mock_dynamodb.Table.return_value.query.call_args.kwargs
        assert call_kwargs["IndexName"] == "restaurant_id-index"
        assert call_kwargs["Limit"] == 10
        assert call_kwargs["ScanIndexForward"] is False

    def test_list_jobs_dynamodb_error(
        self, repository: SyncJobRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test that DynamoDB errors return an empty list."""
        mock_dynamodb.Table.return_value.query.side_effect = client_error("Query")

        assert repository.list_jobs_for_restaurant("rest_123") == []


@pytest.mark.unit
class TestSyncErrorRepository:
    """Test suite for SyncErrorRepository."""

    @pytest.fixture
    def repository(self, mock_dynamodb: MagicMock) -> SyncErrorRepository:
        """Create a SyncErrorRepository with mocked DynamoDB."""
        return SyncErrorRepository(dynamodb_resource=mock_dynamodb, table_name="test-sync-errors")

    @pytest.fixture
    def error(self) -> SyncError:
        return SyncError(
            error_id="err_123",
            created_at=datetime.now(UTC),
            restaurant_id="rest_123",
            error_type=SyncErrorTypeEnum.JOB_FAILURE,
            error_details="Menu not found",
            job_id="job_123",
        )

    def test_save_error_success(
        self, repository: SyncErrorRepository, mock_dynamodb: MagicMock, error: SyncError
    ) -> None:
        """Test successfully saving a failure record."""
        assert repository.save_error(error) is True
        mock_dynamodb.Table.return_value.put_item.assert_called_once()

    def test_save_error_dynamodb_error(
        self, repository: SyncErrorRepository, mock_dynamodb: MagicMock, error: SyncError
    ) -> None:
        """Test that save returns False on DynamoDB error."""
        mock_dynamodb.Table.return_value.put_item.side_effect = client_error("PutItem")

        assert repository.save_error(error) is False

    def test_get_error_uses_composite_key(
        self, repository: SyncErrorRepository, mock_dynamodb: MagicMock, error: SyncError
    ) -> None:
        """Test failure records are looked up by id and timestamp."""
        mock_dynamodb.Table.return_value.get_item.return_value = {"Item": error.to_dynamodb_item()}

        result = repository.get_error("err_123", error.created_at)

        assert result == error
        mock_dynamodb.Table.return_value.get_item.assert_called_once_with(
            Key={"error_id": "err_123", "created_at": error.created_at.isoformat()}
        )

    def test_get_error_not_found(
        self, repository: SyncErrorRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test retrieving non-existent record returns None."""
        mock_dynamodb.Table.return_value.get_item.return_value = {}

        assert repository.get_error("err_missing", datetime.now(UTC)) is None

    def test_list_errors_with_type_filter(
        self, repository: SyncErrorRepository, mock_dynamodb: MagicMock, error: SyncError
    ) -> None:
        """Test the error type filter is added to the index query."""
        mock_dynamodb.Table.return_value.query.return_value = {"Items": [error.to_dynamodb_item()]}

        errors = repository.list_errors_for_restaurant(
            "rest_123", limit=5, error_type=SyncErrorTypeEnum.JOB_FAILURE
        )

        assert errors == [error]
        call_kwargs = mock_dynamodb.Table.return_value.query.call_args.kwargs
        assert call_kwargs["FilterExpression"] == "error_type = :error_type"
        assert call_kwargs["ExpressionAttributeValues"] == {
            ":rid": "rest_123",
            ":error_type": "job_failure",
        }

    def test_list_errors_without_filter(
        self, repository: SyncErrorRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test listing without a type filter queries the whole index."""
        mock_dynamodb.Table.return_value.query.return_value = {"Items": []}

        assert repository.list_errors_for_restaurant("rest_123") == []
        call_kwargs = mock_dynamodb.Table.return_value.query.call_args.kwargs
        assert "FilterExpression" not in call_kwargs

    def test_list_errors_dynamodb_error(
        self, repository: SyncErrorRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test that DynamoDB errors return an empty list."""
        mock_dynamodb.Table.return_value.query.side_effect = client_error("Query")

        assert repository.list_errors_for_restaurant("rest_123") == []


@pytest.mark.unit
class TestPosCredentialRepository:
    """Test suite for PosCredentialRepository."""

    @pytest.fixture
    def repository(self, mock_dynamodb: MagicMock) -> PosCredentialRepository:
        """Create a PosCredentialRepository with mocked DynamoDB."""
        return PosCredentialRepository(
            dynamodb_resource=mock_dynamodb, table_name="test-pos-credentials"
        )

    @pytest.fixture
    def credential(self) -> PosCredential:
        return PosCredential(
            credentials_id="cred_1",
            restaurant_id="rest_123",
            merchant_id="M123",
            access_token="enc-access",
            refresh_token="enc-refresh",
        )

    def test_get_credential(
        self,
        repository: PosCredentialRepository,
        mock_dynamodb: MagicMock,
        credential: PosCredential,
    ) -> None:
        """Test successfully retrieving a credential record."""
        mock_dynamodb.Table.return_value.get_item.return_value = {
            "Item": credential.to_dynamodb_item()
        }

        assert repository.get_credential("cred_1") == credential

    def test_get_credential_not_found(
        self, repository: PosCredentialRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test retrieving non-existent credential returns None."""
        mock_dynamodb.Table.return_value.get_item.return_value = {}

        assert repository.get_credential("cred_missing") is None

    def test_get_credential_for_restaurant(
        self,
        repository: PosCredentialRepository,
        mock_dynamodb: MagicMock,
        credential: PosCredential,
    ) -> None:
        """Test the restaurant index returns the first credential."""
        mock_dynamodb.Table.return_value.query.return_value = {
            "Items": [credential.to_dynamodb_item()]
        }

        assert repository.get_credential_for_restaurant("rest_123") == credential

    def test_get_credential_for_restaurant_none(
        self, repository: PosCredentialRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test a restaurant without credentials returns None."""
        mock_dynamodb.Table.return_value.query.return_value = {"Items": []}

        assert repository.get_credential_for_restaurant("rest_123") is None

    def test_save_credential_dynamodb_error(
        self,
        repository: PosCredentialRepository,
        mock_dynamodb: MagicMock,
        credential: PosCredential,
    ) -> None:
        """Test that save returns False on DynamoDB error."""
        mock_dynamodb.Table.return_value.put_item.side_effect = client_error("PutItem")

        assert repository.save_credential(credential) is False

    def test_list_credentials_follows_pages(
        self,
        repository: PosCredentialRepository,
        mock_dynamodb: MagicMock,
        credential: PosCredential,
    ) -> None:
        """Test the scan follows LastEvaluatedKey until exhausted."""
        second = credential.model_copy(update={"credentials_id": "cred_2"})
        mock_dynamodb.Table.return_value.scan.side_effect = [
            {"Items": [credential.to_dynamodb_item()], "LastEvaluatedKey": {"credentials_id": "cred_1"}},
            {"Items": [second.to_dynamodb_item()]},
        ]

        credentials = repository.list_credentials()

        assert [c.credentials_id for c in credentials] == ["cred_1", "cred_2"]
        second_call = mock_dynamodb.Table.return_value.scan.call_args_list[1]
        assert second_call.kwargs == {"ExclusiveStartKey": {"credentials_id": "cred_1"}}

    def test_list_credentials_dynamodb_error(
        self, repository: PosCredentialRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test that DynamoDB errors return an empty list."""
        mock_dynamodb.Table.return_value.scan.side_effect = client_error("Scan")

        assert repository.list_credentials() == []
