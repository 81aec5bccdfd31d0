import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry import _logs as logs

logger = logging.getLogger(__name__)

_tracing_initialized = False


def setup_tracing() -> bool:
    """
    Initializes OpenTelemetry tracing with an OTLP exporter and logging instrumentation.

    Exporter endpoints come from the standard OTEL_EXPORTER_OTLP_* environment
    variables. Calling this more than once is a no-op.

    Returns:
        True if tracing was initialized by this call
    """
    global _tracing_initialized
    if _tracing_initialized:
        return False

    # --- Traces Setup ---
    trace_provider = TracerProvider()
    trace_exporter = OTLPSpanExporter()
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)

    # --- Logs Setup ---
    log_provider = LoggerProvider()
    log_exporter = OTLPLogExporter()
    log_provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))
    logs.set_logger_provider(log_provider)

    # Attach the OTel handler to the root logger
    otel_handler = LoggingHandler(logger_provider=log_provider)
    logging.getLogger().addHandler(otel_handler)

    _tracing_initialized = True
    logger.info("OpenTelemetry tracing initialized with OTLPLogExporter and OTLPSpanExporter.")
    return True


def get_tracer(name: str) -> trace.Tracer:
    """
    Returns a tracer with the specified name.

    Before setup_tracing() runs this is backed by the no-op provider, so
    instrumented code works the same with tracing off.
    """
    return trace.get_tracer(name)
