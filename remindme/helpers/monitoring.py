from asyncio import iscoroutinefunction
from enum import Enum
from functools import wraps
from os import environ

from opentelemetry import trace
from opentelemetry.semconv.attributes import service_attributes
from opentelemetry.trace.span import INVALID_SPAN
from opentelemetry.util.types import Attributes, AttributeValue
from structlog.contextvars import bind_contextvars

MODULE_NAME = "com.github.remindme"
VERSION = environ.get("VERSION", "0.0.0-unknown")


class SpanAttributeEnum(str, Enum):
    """
    OpenTelemetry attributes.

    These attributes are used to track a storage operation in the logs and traces.
    """

    REMINDER_ID = "reminder.id"
    """Reminder identifier, as assigned by the backend."""
    STORAGE_BACKEND = "storage.backend"
    """Backend serving the operation (e.g. local, remote)."""
    USER_ID = "user.id"
    """Owner of the data being read or written."""

    def attribute(
        self,
        value: AttributeValue,
    ) -> None:
        """
        Set an attribute on the current span.
        """
        # Enrich logging
        bind_contextvars(**{self.value: value})

        # Enrich span
        span = trace.get_current_span()
        if span == INVALID_SPAN:
            return
        span.set_attribute(self.value, value)


# Attributes
_default_attributes = {
    service_attributes.SERVICE_NAME: MODULE_NAME,
    service_attributes.SERVICE_VERSION: VERSION,
}

# Create a tracer that will be used across the application
tracer = trace.get_tracer(
    attributes=_default_attributes,
    instrumenting_module_name=MODULE_NAME,
)


def start_as_current_span(
    name: str,
    attributes: Attributes = None,
):
    """
    Decorator to start an OTEL span for the function and set it as the current.
    """

    def _wrapper(func):
        @wraps(func)
        def _inner(*args, **kwargs):
            # Start a span
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                # Call the function
                return func(*args, **kwargs)

        @wraps(func)
        async def _async_inner(*args, **kwargs):
            # Start a span
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                # Call the function
                return await func(*args, **kwargs)

        return _async_inner if iscoroutinefunction(func) else _inner

    return _wrapper
