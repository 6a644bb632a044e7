"""FastAPI application for catalog sync endpoints."""

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from catalog_sync_service.auth.api_dependencies import (
    get_api_key_from_header,
    get_permissions_from_header,
)
from catalog_sync_service.auth.api_key_validator import APIKeyValidator
from catalog_sync_service.exceptions import (
    AuthorizationError,
    CatalogSyncError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from catalog_sync_service.models.catalog_models import MenuTypeEnum
from catalog_sync_service.models.sync_models import SyncError, SyncErrorTypeEnum, SyncJob
from catalog_sync_service.services.catalog_sync_service import CatalogSyncService
from catalog_sync_service.services.error_service import ErrorService

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[CatalogSyncError], int] = {
    ValidationError: 422,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    ExternalServiceError: 502,
}


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str


class HeadersResponse(BaseModel):
    """Header row a spreadsheet upload must carry."""

    headers: list[str]


class CatalogImportRequest(BaseModel):
    """Spreadsheet upload: the header row followed by data rows."""

    header: list[Any] = Field(..., min_length=1)
    rows: list[list[Any]]
    menu_id: str | None = None


class PosSyncRequest(BaseModel):
    """POS import; when ``items`` is omitted the inventory is fetched from the vendor."""

    items: list[dict[str, Any]] | None = None
    credentials_id: str | None = None


class MenuCreatedRequest(BaseModel):
    menu_type: MenuTypeEnum


class TaxRateChangedRequest(BaseModel):
    is_new: bool


class JobAcceptedResponse(BaseModel):
    """Response model for accepted jobs."""

    job_id: str
    job_type: str
    status: str
    row_count: int | None = None


def _accepted(job: SyncJob) -> JobAcceptedResponse:
    return JobAcceptedResponse(
        job_id=job.job_id,
        job_type=job.job_type.value,
        status=job.status.value,
        row_count=job.row_count,
    )


def _status_code_for(error: CatalogSyncError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_class):
            return status_code
    return 500


def create_app(
    catalog_sync_service: CatalogSyncService,
    error_service: ErrorService,
    api_keys: list[str],
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        catalog_sync_service: Service validating requests and queuing jobs
        error_service: Service for reading failure records
        api_keys: List of valid API keys for authentication

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Catalog Sync Service API",
        description="API for queuing restaurant catalog imports, POS syncs and propagations",
        version="1.0.0",
    )

    # Store services in app state for access in route handlers
    app.state.catalog_sync_service = catalog_sync_service
    app.state.error_service = error_service
    app.state.api_key_validator = APIKeyValidator(api_keys=api_keys)

    @app.exception_handler(CatalogSyncError)
    async def catalog_sync_error_handler(request: Request, exc: CatalogSyncError) -> JSONResponse:
        status_code = _status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "message": exc.message, "details": exc.details},
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint.

        Returns:
            Health status indicating service is running
        """
        return HealthResponse(status="healthy")

    def validate_api_key(x_api_key: str | None = Header(None)) -> str:
        """Dependency to validate API key."""
        return get_api_key_from_header(x_api_key=x_api_key, validator=app.state.api_key_validator)

    @app.get(
        "/restaurants/{restaurant_id}/catalog/headers",
        response_model=HeadersResponse,
        tags=["Catalog"],
    )
    async def get_spreadsheet_headers(
        restaurant_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> HeadersResponse:
        """Return the header row expected for a spreadsheet upload."""
        return HeadersResponse(headers=app.state.catalog_sync_service.get_spreadsheet_headers())

    @app.post(
        "/restaurants/{restaurant_id}/catalog/imports",
        response_model=JobAcceptedResponse,
        status_code=202,
        tags=["Catalog"],
    )
    async def import_catalog(
        restaurant_id: str,
        request: CatalogImportRequest,
        permissions: list[str] = Depends(get_permissions_from_header),
        x_user_id: str | None = Header(None),
        _api_key: str = Depends(validate_api_key),
    ) -> JobAcceptedResponse:
        """Validate a spreadsheet upload and queue it for merging.

        Args:
            restaurant_id: The restaurant whose catalog is updated
            request: Header row, data rows and optional target menu

        Returns:
            The queued job
        """
        logger.info(f"Catalog import requested for restaurant {restaurant_id} ({len(request.rows)} rows)")
        job = await app.state.catalog_sync_service.enqueue_catalog_import(
            restaurant_id=restaurant_id,
            header=request.header,
            rows=request.rows,
            permissions=permissions,
            user_id=x_user_id,
            menu_id=request.menu_id,
        )
        return _accepted(job)

    @app.post(
        "/restaurants/{restaurant_id}/pos-sync",
        response_model=JobAcceptedResponse,
        status_code=202,
        tags=["Catalog"],
    )
    async def sync_pos_catalog(
        restaurant_id: str,
        request: PosSyncRequest,
        permissions: list[str] = Depends(get_permissions_from_header),
        x_user_id: str | None = Header(None),
        _api_key: str = Depends(validate_api_key),
    ) -> JobAcceptedResponse:
        """Queue an import of the restaurant's POS inventory."""
        job = await app.state.catalog_sync_service.enqueue_pos_sync(
            restaurant_id=restaurant_id,
            items=request.items,
            permissions=permissions,
            user_id=x_user_id,
            credentials_id=request.credentials_id,
        )
        return _accepted(job)

    @app.post(
        "/restaurants/{restaurant_id}/menus/{menu_id}/created",
        response_model=JobAcceptedResponse,
        status_code=202,
        tags=["Propagation"],
    )
    async def menu_created(
        restaurant_id: str,
        menu_id: str,
        request: MenuCreatedRequest,
        permissions: list[str] = Depends(get_permissions_from_header),
        x_user_id: str | None = Header(None),
        _api_key: str = Depends(validate_api_key),
    ) -> JobAcceptedResponse:
        """Queue propagation of a newly created menu's order channel."""
        job = await app.state.catalog_sync_service.on_menu_created(
            restaurant_id=restaurant_id,
            menu_type=request.menu_type,
            menu_id=menu_id,
            permissions=permissions,
            user_id=x_user_id,
        )
        return _accepted(job)

    @app.post(
        "/restaurants/{restaurant_id}/tax-rates/{tax_rate_id}/changed",
        response_model=JobAcceptedResponse,
        status_code=202,
        tags=["Propagation"],
    )
    async def tax_rate_changed(
        restaurant_id: str,
        tax_rate_id: str,
        request: TaxRateChangedRequest,
        permissions: list[str] = Depends(get_permissions_from_header),
        x_user_id: str | None = Header(None),
        _api_key: str = Depends(validate_api_key),
    ) -> JobAcceptedResponse:
        """Queue propagation of an added or updated tax rate."""
        job = await app.state.catalog_sync_service.on_tax_rate_changed(
            restaurant_id=restaurant_id,
            tax_rate_id=tax_rate_id,
            is_new=request.is_new,
            permissions=permissions,
            user_id=x_user_id,
        )
        return _accepted(job)

    @app.get(
        "/restaurants/{restaurant_id}/jobs",
        response_model=list[SyncJob],
        tags=["Jobs"],
    )
    async def list_jobs(
        restaurant_id: str,
        limit: int = 50,
        _api_key: str = Depends(validate_api_key),
    ) -> list[SyncJob]:
        """List a restaurant's jobs, newest first."""
        jobs: list[SyncJob] = app.state.catalog_sync_service.list_jobs(restaurant_id, limit=limit)
        return jobs

    @app.get("/jobs/{job_id}", response_model=SyncJob, tags=["Jobs"])
    async def get_job(
        job_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> SyncJob:
        """Get one job's lifecycle state and summary."""
        job: SyncJob = app.state.catalog_sync_service.get_job(job_id)
        return job

    @app.get(
        "/restaurants/{restaurant_id}/errors",
        response_model=list[SyncError],
        tags=["Errors"],
    )
    async def get_errors(
        restaurant_id: str,
        error_type: SyncErrorTypeEnum | None = None,
        limit: int = 50,
        _api_key: str = Depends(validate_api_key),
    ) -> list[SyncError]:
        """Get failure records for a restaurant.

        Args:
            restaurant_id: The restaurant ID
            error_type: Optional filter (job_failure or upload_validation)
            limit: Maximum number of records to return

        Returns:
            List of failure records
        """
        errors: list[SyncError] = await app.state.error_service.get_errors_for_restaurant(
            restaurant_id=restaurant_id,
            error_type=error_type,
            limit=limit,
        )
        return errors

    return app
