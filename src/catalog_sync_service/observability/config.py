"""OpenTelemetry and structured logging setup shared by the API, the worker and Lambda."""

import logging
import os
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.boto3sqs import Boto3SQSInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "catalog-sync-svc"

# Libraries whose INFO output drowns out job logs
NOISY_LOGGERS = ("sqlalchemy.engine", "botocore", "httpx", "urllib3")


def _service_name() -> str:
    return os.getenv("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME)


def build_resource(role: str) -> Resource:
    """Describe this process to the collector.

    Args:
        role: Which entry point is running ("api", "worker" or "lambda")
    """
    return Resource.create(
        {
            "service.name": _service_name(),
            "service.role": role,
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
        }
    )


def install_providers(resource: Resource, export: bool) -> None:
    """Install tracer and meter providers, with OTLP exporters when ``export`` is set."""
    if not export:
        trace.set_tracer_provider(TracerProvider(resource=resource))
        metrics.set_meter_provider(MeterProvider(resource=resource))
        return

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318").rstrip("/")
    interval_ms = int(os.getenv("OTEL_METRIC_EXPORT_INTERVAL", "60000"))

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces"))
    )
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"), export_interval_millis=interval_ms
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))

    logger.info(f"OTLP export to {endpoint} (metrics every {interval_ms}ms)")


def setup_observability(
    app: Any = None, engine: Engine | None = None, role: str | None = None
) -> None:
    """Initialize tracing, metrics and library instrumentation for one entry point.

    Exporters are disabled when ENVIRONMENT is "test". The FastAPI app is
    instrumented when given, the catalog engine likewise; outbound httpx
    calls (POS vendor, webhooks) and SQS publishes are always instrumented.

    Args:
        app: FastAPI application serving the HTTP API
        engine: Catalog database engine
        role: Entry point name recorded on the resource (defaults to "api"
            when an app is given, otherwise "worker")
    """
    role = role or ("api" if app is not None else "worker")
    install_providers(build_resource(role), export=os.getenv("ENVIRONMENT") != "test")

    HTTPXClientInstrumentor().instrument()
    Boto3SQSInstrumentor().instrument()
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine)
    if app is not None:
        FastAPIInstrumentor.instrument_app(app)

    logger.info(f"Observability configured for {role}")


def configure_logging(log_level: str = "INFO") -> None:
    """Route all logging through one JSON handler on stdout.

    LOG_LEVEL in the environment overrides ``log_level``. Every record
    carries the service name so API, worker and Lambda logs can be told
    apart after aggregation.
    """
    level_name = os.getenv("LOG_LEVEL", log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"levelname": "level", "asctime": "time"},
        static_fields={"service": _service_name()},
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.info(f"Structured JSON logging configured at {level_name} level")
