from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span

if TYPE_CHECKING:
    from sharpcrm.core.config import Settings
    from sharpcrm.platform.security.context import Identity


_access_tracer = trace.get_tracer("sharpcrm.access")
_exporters_attached = False
_provider: TracerProvider | None = None


def _tracer_provider(service_name: str, service_version: str, environment: str) -> TracerProvider:
    global _provider

    if _provider is None:
        _provider = TracerProvider(
            resource=Resource.create(
                {
                    "service.name": service_name,
                    "service.version": service_version,
                    "deployment.environment": environment,
                }
            )
        )
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    """Install the tracer provider and attach the exporters named in ``settings`` once."""

    global _exporters_attached

    if not settings.otel_enabled:
        return None

    provider = _tracer_provider(settings.otel_service_name, settings.app_version, settings.app_env)
    if _exporters_attached:
        return provider

    if settings.otel_exporter_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _exporters_attached = True
    return provider


def setup_inmemory_otel(service_name: str = "sharpcrm-access") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _tracer_provider(service_name, "test", "test").add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


@contextmanager
def access_span(resource: str, operation: str, identity: Identity) -> Iterator[Span]:
    """Span named ``access.<resource>.<operation>`` tagged with the caller's tenant and role."""

    with _access_tracer.start_as_current_span(f"access.{resource}.{operation}") as span:
        if span.is_recording():
            span.set_attribute("access.resource", resource)
            span.set_attribute("access.operation", operation)
            span.set_attribute("enduser.id", identity.user_id)
            span.set_attribute("enduser.role", identity.role_name)
            span.set_attribute("tenant.id", identity.tenant_id)
        yield span


def get_fastapi_server_request_hook():
    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        for name, value in scope.get("headers", []):
            if name == b"x-correlation-id":
                span.set_attribute("correlation_id", value.decode("latin-1"))
                break

    return server_request_hook
