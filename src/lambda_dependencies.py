"""Shared dependency factory for the API, the worker and Lambda handlers.

This module provides cached dependency initialization to optimize Lambda cold starts.
Dependencies are created once and reused across invocations within the same container.
"""

import logging
import os
from typing import Any

import boto3
from fastapi import FastAPI
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from catalog_sync_service.adapters.clover_adapter import CloverAdapter
from catalog_sync_service.auth.api_key_validator import parse_api_keys
from catalog_sync_service.handlers.api_handler import create_app
from catalog_sync_service.handlers.job_handler import JobHandler
from catalog_sync_service.observability import configure_logging
from catalog_sync_service.repositories.catalog_database import (
    create_catalog_engine,
    create_catalog_tables,
    create_session_factory,
)
from catalog_sync_service.repositories.masters_repository import MastersRepository
from catalog_sync_service.repositories.sync_repositories import (
    PosCredentialRepository,
    SyncErrorRepository,
    SyncJobRepository,
)
from catalog_sync_service.services.catalog_import_service import CatalogImportService
from catalog_sync_service.services.catalog_sync_service import CatalogSyncService
from catalog_sync_service.services.credential_service import CredentialService
from catalog_sync_service.services.error_service import ErrorService
from catalog_sync_service.services.job_queue import JobQueuePublisher
from catalog_sync_service.services.notification_service import (
    LoggingNotificationSender,
    NotificationSender,
    WebhookNotificationSender,
)
from catalog_sync_service.services.propagation_service import (
    NewMenuTypePropagator,
    TaxRatePropagator,
)
from catalog_sync_service.services.transaction_coordinator import TransactionCoordinator

logger = logging.getLogger(__name__)

# Module-level caches for container reuse
_dynamodb_resource: Any | None = None
_sqs_client: Any | None = None
_catalog_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None
_masters_repository: MastersRepository | None = None
_job_repository: SyncJobRepository | None = None
_error_service: ErrorService | None = None
_credential_service: CredentialService | None = None
_catalog_sync_service: CatalogSyncService | None = None
_job_handler: JobHandler | None = None
_fastapi_app: FastAPI | None = None


def get_dynamodb_resource() -> Any:
    """Create or retrieve cached DynamoDB resource.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    global _dynamodb_resource

    if _dynamodb_resource is not None:
        return _dynamodb_resource

    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        # Local DynamoDB - use environment variables
        access_key = os.getenv("AWS_ACCESS_KEY_ID")
        secret_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        _dynamodb_resource = boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )
    else:
        logger.info(f"Using AWS DynamoDB in region {region}")
        _dynamodb_resource = boto3.resource("dynamodb", region_name=region)

    return _dynamodb_resource


def get_sqs_client() -> Any:
    """Create or retrieve cached SQS client."""
    global _sqs_client

    if _sqs_client is None:
        _sqs_client = boto3.client("sqs", region_name=os.getenv("AWS_REGION", "us-east-1"))

    return _sqs_client


def get_catalog_engine() -> Engine:
    """Create or retrieve the cached catalog database engine.

    Tables are created on first use when CATALOG_CREATE_TABLES is true.
    """
    global _catalog_engine

    if _catalog_engine is not None:
        return _catalog_engine

    database_url = os.getenv("CATALOG_DATABASE_URL", "sqlite:///./catalog.db")
    _catalog_engine = create_catalog_engine(database_url)

    if os.getenv("CATALOG_CREATE_TABLES", "false").lower() == "true":
        create_catalog_tables(_catalog_engine)
        logger.info("Catalog tables created")

    logger.info(f"Catalog database engine configured for {_catalog_engine.url.render_as_string()}")
    return _catalog_engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_catalog_engine())

    return _session_factory


def get_masters_repository() -> MastersRepository:
    global _masters_repository

    if _masters_repository is None:
        default_max_rows = int(os.getenv("DEFAULT_MAX_IMPORT_ROWS", "500"))
        _masters_repository = MastersRepository(
            session_factory=get_session_factory(), default_max_rows=default_max_rows
        )

    return _masters_repository


def get_job_repository() -> SyncJobRepository:
    global _job_repository

    if _job_repository is None:
        jobs_table = os.getenv("DYNAMODB_SYNC_JOBS_TABLE", "catalog-sync-jobs")
        _job_repository = SyncJobRepository(
            dynamodb_resource=get_dynamodb_resource(), table_name=jobs_table
        )

    return _job_repository


def get_error_service() -> ErrorService:
    """Create or retrieve cached error service.

    Returns:
        Configured ErrorService instance
    """
    global _error_service

    if _error_service is not None:
        return _error_service

    errors_table = os.getenv("DYNAMODB_SYNC_ERRORS_TABLE", "catalog-sync-errors")
    error_repository = SyncErrorRepository(
        dynamodb_resource=get_dynamodb_resource(), table_name=errors_table
    )

    _error_service = ErrorService(error_repository=error_repository)

    logger.info("Error service initialized")
    return _error_service


def get_credential_service() -> CredentialService | None:
    """Create or retrieve the cached POS credential service.

    Returns:
        CredentialService, or None when POS credentials are not configured
    """
    global _credential_service

    if _credential_service is not None:
        return _credential_service

    encryption_key = os.getenv("CREDENTIALS_ENCRYPTION_KEY")
    if not encryption_key:
        logger.warning("CREDENTIALS_ENCRYPTION_KEY not configured, POS integration disabled")
        return None

    adapter = CloverAdapter(
        api_endpoint=os.getenv("CLOVER_API_ENDPOINT", "https://api.clover.com"),
        app_id=os.getenv("CLOVER_APP_ID", ""),
    )
    credentials_table = os.getenv("DYNAMODB_POS_CREDENTIALS_TABLE", "catalog-pos-credentials")
    repository = PosCredentialRepository(
        dynamodb_resource=get_dynamodb_resource(), table_name=credentials_table
    )

    _credential_service = CredentialService(
        repository=repository, adapter=adapter, encryption_key=encryption_key
    )

    logger.info("Credential service initialized")
    return _credential_service


def get_notification_sender() -> NotificationSender:
    webhook_url = os.getenv("NOTIFICATION_WEBHOOK_URL")
    if webhook_url:
        return WebhookNotificationSender(webhook_url=webhook_url)
    return LoggingNotificationSender()


def get_catalog_sync_service() -> CatalogSyncService:
    """Create or retrieve cached catalog sync service.

    Raises:
        ValueError: If SYNC_QUEUE_URL is not set
    """
    global _catalog_sync_service

    if _catalog_sync_service is not None:
        return _catalog_sync_service

    queue_url = os.getenv("SYNC_QUEUE_URL")
    if not queue_url:
        raise ValueError("SYNC_QUEUE_URL must be set in environment")

    publisher = JobQueuePublisher(
        sqs_client=get_sqs_client(),
        queue_url=queue_url,
        fifo=os.getenv("SYNC_QUEUE_FIFO", "false").lower() == "true",
    )

    _catalog_sync_service = CatalogSyncService(
        masters_repository=get_masters_repository(),
        job_repository=get_job_repository(),
        publisher=publisher,
        error_service=get_error_service(),
    )

    logger.info(f"Catalog sync service initialized - queue: {queue_url}")
    return _catalog_sync_service


def get_job_handler() -> JobHandler:
    """Create or retrieve cached job handler.

    Returns:
        Configured JobHandler instance
    """
    global _job_handler

    if _job_handler is not None:
        return _job_handler

    retry_delay = float(os.getenv("RETRY_DELAY_SECONDS", "0.5"))
    coordinator = TransactionCoordinator(
        session_factory=get_session_factory(), retry_delay_seconds=retry_delay
    )
    credential_service = get_credential_service()

    _job_handler = JobHandler(
        job_repository=get_job_repository(),
        masters_repository=get_masters_repository(),
        import_service=CatalogImportService(coordinator=coordinator),
        menu_type_propagator=NewMenuTypePropagator(coordinator=coordinator),
        tax_rate_propagator=TaxRatePropagator(coordinator=coordinator),
        error_service=get_error_service(),
        notification_sender=get_notification_sender(),
        credential_service=credential_service,
        pos_adapter=credential_service.adapter if credential_service is not None else None,
    )

    logger.info("Job handler initialized")
    return _job_handler


def get_fastapi_app() -> FastAPI:
    """Create or retrieve cached FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    global _fastapi_app

    if _fastapi_app is not None:
        return _fastapi_app

    api_keys = parse_api_keys(os.getenv("ADMIN_API_KEY", ""))

    if not api_keys:
        logger.warning("No ADMIN_API_KEY configured - using development key")
        api_keys = ["dummy-key-for-development"]

    _fastapi_app = create_app(
        catalog_sync_service=get_catalog_sync_service(),
        error_service=get_error_service(),
        api_keys=api_keys,
    )

    logger.info("FastAPI application initialized")
    return _fastapi_app


def initialize_lambda_environment() -> None:
    """Initialize Lambda environment with logging.

    Should be called once during Lambda cold start.
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    configure_logging(log_level)

    logger.info("Lambda environment initialized")
