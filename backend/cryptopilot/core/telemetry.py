"""OpenTelemetry wiring plus the spans and meters emitted by background jobs."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from opentelemetry.trace import Status, StatusCode
from sqlalchemy.ext.asyncio import AsyncEngine

from cryptopilot.config import AppSettings

logger = logging.getLogger(__name__)

_INSTRUMENTATION_NAME = "cryptopilot"
_METRIC_EXPORT_INTERVAL_MS = 10000
_telemetry_ready = False
_instruments: dict[str, Any] = {}


def get_tracer() -> trace.Tracer:
    """Tracer for application spans; a no-op tracer until telemetry is configured."""

    return trace.get_tracer(_INSTRUMENTATION_NAME)


def _instrument(name: str) -> Any:
    # Created lazily through the global proxy meter so they follow a provider set later.
    if not _instruments:
        meter = metrics.get_meter(_INSTRUMENTATION_NAME)
        _instruments["job_runs"] = meter.create_counter(
            "cryptopilot.jobs.runs",
            unit="1",
            description="Background jobs finished, by job name and outcome",
        )
        _instruments["job_duration"] = meter.create_histogram(
            "cryptopilot.jobs.duration",
            unit="s",
            description="Wall time of background jobs",
        )
        _instruments["backfilled_prices"] = meter.create_counter(
            "cryptopilot.backfill.prices",
            unit="1",
            description="Historical prices written by the reconciler",
        )
    return _instruments[name]


@contextmanager
def job_span(name: str, rid: str, worker: int) -> Iterator[trace.Span]:
    """Span ``job.<name>`` around one job run, recording its outcome and duration."""

    attributes = {"cryptopilot.job.name": name}
    outcome = "ok"
    started = time.perf_counter()
    with get_tracer().start_as_current_span(
        f"job.{name}",
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        span.set_attribute("cryptopilot.job.rid", rid)
        span.set_attribute("cryptopilot.job.worker", worker)
        try:
            yield span
        except Exception as exc:
            outcome = "error"
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
        except BaseException:
            outcome = "cancelled"
            raise
        finally:
            span.set_attribute("cryptopilot.job.outcome", outcome)
            _instrument("job_runs").add(1, {**attributes, "outcome": outcome})
            _instrument("job_duration").record(time.perf_counter() - started, attributes)


def record_backfill(symbol: str, provider: str, written: int) -> None:
    if written:
        _instrument("backfilled_prices").add(written, {"symbol": symbol, "provider": provider})


def setup_telemetry(app: FastAPI, settings: AppSettings, engine: AsyncEngine | None = None) -> None:
    """Export traces, metrics and logs over OTLP and instrument FastAPI, httpx and SQLAlchemy."""

    global _telemetry_ready  # noqa: PLW0603 - single initialisation guard

    if _telemetry_ready:
        return
    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: _INSTRUMENTATION_NAME,
        }
    )
    exporter_options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        exporter_options["endpoint"] = settings.telemetry_otlp_endpoint

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_options)))
    trace.set_tracer_provider(tracer_provider)

    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[
            PeriodicExportingMetricReader(
                OTLPMetricExporter(**exporter_options),
                export_interval_millis=_METRIC_EXPORT_INTERVAL_MS,
            )
        ],
    )
    metrics.set_meter_provider(meter_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**exporter_options)))
    set_logger_provider(logger_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider, meter_provider=meter_provider)
    # Outbound price provider calls get their own client spans
    HTTPXClientInstrumentor().instrument(tracer_provider=tracer_provider)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=tracer_provider)

    _telemetry_ready = True
    logger.info("Telemetry initialised for %s", settings.telemetry_service_name)


__all__ = ["get_tracer", "job_span", "record_backfill", "setup_telemetry"]
