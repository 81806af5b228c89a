# telemetry.py — OpenTelemetry tracing for datastore calls
"""
Every Datastore call runs inside a `datastore.<operation>` span carrying the
call's identifying attributes (pack name, host id, batch size). SQL statements
are traced underneath it through the SQLAlchemy instrumentor.

Spans are exported to an OTLP collector when OTEL_EXPORTER_OTLP_ENDPOINT is
set. Without an endpoint, or without the SDK installed, tracing is a no-op.
"""
import os
import logging
from contextlib import contextmanager

logger = logging.getLogger("packplane.telemetry")

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "packplane")
SERVICE_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")

ATTRIBUTE_PREFIX = "packplane."


def _instrument_sqlalchemy(provider, engine):
    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    except ImportError:
        logger.warning("opentelemetry-instrumentation-sqlalchemy not installed, SQL spans disabled")
        return
    kwargs = {"tracer_provider": provider}
    if engine is not None:
        # Async engines are instrumented through their sync core
        kwargs["engine"] = getattr(engine, "sync_engine", engine)
    SQLAlchemyInstrumentor().instrument(**kwargs)
    logger.info("SQLAlchemy instrumented with OpenTelemetry")


def setup_telemetry(engine=None):
    """Register an OTLP tracer provider and instrument `engine`.

    Returns the provider, or None when tracing stays off.
    """
    if not OTLP_ENDPOINT:
        logger.info("OpenTelemetry disabled (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME as RES_SVC_NAME
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.info("OpenTelemetry SDK not installed, tracing disabled")
        return None

    try:
        provider = TracerProvider(resource=Resource.create({
            RES_SVC_NAME: SERVICE_NAME,
            "service.version": SERVICE_VERSION,
            "deployment.environment": ENVIRONMENT,
        }))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True)))
        trace.set_tracer_provider(provider)
        _instrument_sqlalchemy(provider, engine)
    except Exception as e:
        logger.error(f"OpenTelemetry setup failed: {e}")
        return None

    logger.info(f"OpenTelemetry initialised → {OTLP_ENDPOINT}")
    return provider


def get_tracer(name: str = "packplane"):
    """Tracer for datastore spans, or None if OTel is not installed."""
    try:
        from opentelemetry import trace
    except ImportError:
        return None
    return trace.get_tracer(name, SERVICE_VERSION)


@contextmanager
def span(name: str, **attributes):
    """Run a block inside a span; attributes set to None are left off"""
    tracer = get_tracer()
    if tracer is None:
        yield None
        return
    with tracer.start_as_current_span(name) as current:
        for key, value in attributes.items():
            if value is not None:
                current.set_attribute(ATTRIBUTE_PREFIX + key, value)
        yield current
