"""OpenTelemetry tracing decorators."""

import functools
import inspect
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from opentelemetry import trace

F = TypeVar("F", bound=Callable[..., Any])

SERVICE_NAME = "catalog-sync-svc"

# Call arguments copied onto the span so traces can be filtered per tenant and job
SPAN_ARGUMENTS = ("restaurant_id", "job_id", "menu_id", "tax_rate_id")


def _call_attributes(signature: inspect.Signature, args: tuple, kwargs: dict) -> dict[str, str]:
    try:
        bound = signature.bind_partial(*args, **kwargs).arguments
    except TypeError:
        return {}

    # Job handlers receive a payload object rather than loose ids
    payload = bound.get("payload")
    values = {name: bound.get(name, getattr(payload, name, None)) for name in SPAN_ARGUMENTS}
    return {f"catalog.{name}": value for name, value in values.items() if isinstance(value, str)}


@contextmanager
def _span(tracer: trace.Tracer, name: str, attributes: dict[str, str]) -> Iterator[trace.Span]:
    with tracer.start_as_current_span(name, attributes=attributes, record_exception=False) as span:
        try:
            yield span
        except Exception as e:
            span.set_attribute("success", False)
            span.set_attribute("error.type", type(e).__name__)
            span.record_exception(e)
            raise
        span.set_attribute("success", True)


def traced(span_name: str | None = None, service_name: str = SERVICE_NAME) -> Callable[[F], F]:
    """Wrap a function, sync or async, in an OpenTelemetry span.

    The span is named ``span_name`` (or the function name) and records the
    restaurant, job, menu and tax rate ids found among the call's arguments,
    whether the call succeeded, and the exception type when it did not.

    Example:
        @traced("catalog_import.apply_batch")
        def apply_batch(self, restaurant_id: str, rows: list[RowItem]) -> ImportSummary:
            ...
    """

    def decorator(func: F) -> F:
        name = span_name or func.__name__
        tracer = trace.get_tracer(service_name)
        signature = inspect.signature(func)

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with _span(tracer, name, _call_attributes(signature, args, kwargs)):
                return await func(*args, **kwargs)

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with _span(tracer, name, _call_attributes(signature, args, kwargs)):
                return func(*args, **kwargs)

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator
