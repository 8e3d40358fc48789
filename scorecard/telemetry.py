import logging
import os

from opentelemetry import trace

logger = logging.getLogger(__name__)

_TRACER_NAME = "scorecard"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return an OTel tracer; spans are no-ops until ``setup_otel`` installs a provider."""
    return trace.get_tracer(name or _TRACER_NAME)


def _instrument_fastapi(app) -> None:
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    FastAPIInstrumentor.instrument_app(app)


def _instrument_sqlalchemy(_app) -> None:
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

    from scorecard.db import get_engine

    SQLAlchemyInstrumentor().instrument(engine=get_engine())


def _instrument_celery(_app) -> None:
    from opentelemetry.instrumentation.celery import CeleryInstrumentor

    CeleryInstrumentor().instrument()


def _instrument_logging(_app) -> None:
    from opentelemetry.instrumentation.logging import LoggingInstrumentor

    LoggingInstrumentor().instrument(set_logging_format=True)


_INSTRUMENTORS = (
    ("FastAPI", _instrument_fastapi),
    ("SQLAlchemy", _instrument_sqlalchemy),
    ("Celery", _instrument_celery),
    ("logging", _instrument_logging),
)


def setup_otel(app) -> None:
    """Export scorecard traces over OTLP when ``OTEL_ENABLED`` is set.

    Instrumentation packages live in the ``otel`` extra; any that are not
    installed are logged and skipped.
    """
    if os.getenv("OTEL_ENABLED", "false").lower() not in {"1", "true", "yes", "on"}:
        return

    try:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.exception("OpenTelemetry SDK not available, skipping setup.")
        return

    service_name = os.getenv("OTEL_SERVICE_NAME", "scorecard")
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    exporter = OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces") if endpoint else OTLPSpanExporter()
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    for label, instrument in _INSTRUMENTORS:
        try:
            instrument(app)
        except Exception:
            logger.warning("OTel: %s instrumentation unavailable", label, exc_info=True)
        else:
            logger.info("OTel: %s instrumented", label)

    logger.info("OpenTelemetry tracing enabled (service=%s)", service_name)
