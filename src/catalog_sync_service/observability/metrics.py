"""Custom metrics for the catalog sync service."""

from opentelemetry import metrics

meter = metrics.get_meter("catalog-sync-svc")

job_committed_counter = meter.create_counter(
    name="catalog_job_committed_total",
    description="Total number of committed sync jobs by job type",
    unit="1",
)

job_failed_counter = meter.create_counter(
    name="catalog_job_failed_total",
    description="Total number of failed sync jobs by job type and error type",
    unit="1",
)

job_duration_histogram = meter.create_histogram(
    name="catalog_job_duration_seconds",
    description="Duration of sync jobs by job type",
    unit="s",
)

entity_change_counter = meter.create_counter(
    name="catalog_entities_changed_total",
    description="Catalog entities created or updated by imports",
    unit="1",
)

propagation_update_counter = meter.create_counter(
    name="catalog_propagation_updates_total",
    description="Entities rewritten by propagation workers",
    unit="1",
)

pos_api_response_time = meter.create_histogram(
    name="pos_api_response_time_seconds",
    description="Response time for POS vendor API calls",
    unit="s",
)


def record_job_committed(job_type: str) -> None:
    """Record a committed job.

    Args:
        job_type: Type of the job (e.g., "SaveCsvData")
    """
    job_committed_counter.add(1, {"job_type": job_type})


def record_job_failed(job_type: str, error_type: str) -> None:
    """Record a failed job.

    Args:
        job_type: Type of the job
        error_type: Exception class that failed the job
    """
    job_failed_counter.add(1, {"job_type": job_type, "error_type": error_type})


def record_job_duration(job_type: str, duration_seconds: float) -> None:
    job_duration_histogram.record(duration_seconds, {"job_type": job_type})


def record_entity_changes(entity_type: str, created: int, updated: int) -> None:
    """Record created/updated entity counts of one import.

    Args:
        entity_type: Entity type (e.g., "items", "categories")
        created: Number of entities created
        updated: Number of entities updated
    """
    if created:
        entity_change_counter.add(created, {"entity_type": entity_type, "change": "created"})
    if updated:
        entity_change_counter.add(updated, {"entity_type": entity_type, "change": "updated"})


def record_propagation_updates(kind: str, count: int) -> None:
    """Record entities rewritten by a propagation worker.

    Args:
        kind: Propagation kind ("menu_type" or "tax_rate")
        count: Number of entities rewritten
    """
    propagation_update_counter.add(count, {"kind": kind})


def record_pos_api_call(platform: str, operation: str, duration_seconds: float) -> None:
    """Record a POS vendor API call.

    Args:
        platform: The POS platform that was called
        operation: The operation performed (e.g., "fetch_items", "refresh_tokens")
        duration_seconds: Duration in seconds
    """
    pos_api_response_time.record(duration_seconds, {"platform": platform, "operation": operation})
