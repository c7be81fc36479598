"""OpenTelemetry tracing helpers for codebox.

Code calls ``get_tracer()`` without caring whether the SDK is installed;
without a configured SDK the API hands back no-op tracers.

Usage::

    from codebox.utils.telemetry import ATTR_LANGUAGE, get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("codebox.execute") as span:
        span.set_attribute(ATTR_LANGUAGE, "python")

Call :func:`configure_telemetry` once at startup to export real spans
(requires the ``otel`` extra: ``pip install codebox[otel]``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from codebox.config import TelemetrySettings

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_LANGUAGE = "codebox.language"
ATTR_CORRELATION_ID = "codebox.correlation_id"
ATTR_IMAGE = "codebox.image"
ATTR_STATE = "codebox.state"
ATTR_EXIT_CODE = "codebox.exit_code"
ATTR_DURATION_MS = "codebox.duration_ms"

_INSTRUMENTATION_NAME = "codebox"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a :class:`~opentelemetry.trace.Tracer` for *name* (no-op without an SDK)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def configure_telemetry(
    *,
    service_name: str = "codebox",
    export_to_console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider (requires ``codebox[otel]``).

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    export_to_console:
        If ``True``, export spans as JSON to stdout.
    otlp_endpoint:
        If set, export spans via OTLP/gRPC to this endpoint.

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install codebox[otel]"
        )
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if export_to_console:
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter  # pyright: ignore[reportMissingImports]

        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    if otlp_endpoint:
        _add_otlp_exporter(provider, BatchSpanProcessor, otlp_endpoint)

    trace.set_tracer_provider(provider)


def configure_from_settings(settings: TelemetrySettings) -> bool:
    """Apply :class:`~codebox.config.TelemetrySettings`; return whether tracing was enabled."""
    if not settings.enabled:
        return False
    configure_telemetry(
        export_to_console=settings.export_to_console,
        otlp_endpoint=settings.otlp_endpoint,
    )
    return True


def _add_otlp_exporter(provider: Any, processor_cls: Any, endpoint: str) -> None:
    """Attach the OTLP gRPC exporter."""
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = (
            "opentelemetry-exporter-otlp is required for OTLP export. "
            "Install it with: pip install codebox[otel]"
        )
        raise ImportError(msg) from exc

    provider.add_span_processor(processor_cls(OTLPSpanExporter(endpoint=endpoint)))
