"""Prometheus metrics and OpenTelemetry tracing for the processing service."""

from __future__ import annotations

import time

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..core.config import Settings, get_settings

INGRESS_REQUESTS = Counter(
    "video_processing_http_requests_total",
    "Ingress requests by route template and status code",
    labelnames=("method", "route", "status"),
)
INGRESS_LATENCY = Histogram(
    "video_processing_http_request_duration_seconds",
    "Ingress handling time; process-video spans the whole pipeline run",
    labelnames=("method", "route"),
    buckets=(0.05, 0.25, 1, 5, 15, 30, 60, 120, 300, 600, 1800),
)
VIDEO_JOBS = Counter(
    "video_processing_jobs_total",
    "Video processing jobs grouped by outcome",
    labelnames=("outcome",),
)
TRANSCRIPTION_JOBS = Counter(
    "transcription_jobs_total",
    "Transcription jobs grouped by outcome",
    labelnames=("outcome",),
)

UNMATCHED_ROUTE = "unmatched"

_tracer_provider: TracerProvider | None = None


def record_video_job(outcome: str) -> None:
    VIDEO_JOBS.labels(outcome=outcome).inc()


def record_transcription_job(outcome: str) -> None:
    TRANSCRIPTION_JOBS.labels(outcome=outcome).inc()


def route_template(request: Request) -> str:
    """Label requests by their route path (``/videos/{video_id}``), never the raw URL."""

    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        response = await call_next(request)
        route = route_template(request)
        if route == get_settings().prometheus_metrics_path:
            return response
        INGRESS_REQUESTS.labels(
            method=request.method, route=route, status=str(response.status_code)
        ).inc()
        INGRESS_LATENCY.labels(method=request.method, route=route).observe(
            time.perf_counter() - start
        )
        return response


def setup_prometheus(app: FastAPI) -> None:
    """Attach the request middleware and expose the scrape endpoint."""

    app.add_middleware(PrometheusMiddleware)

    @app.get(get_settings().prometheus_metrics_path, include_in_schema=False)
    async def prometheus_metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def parse_otlp_headers(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` as accepted by ``OTEL_EXPORTER_OTLP_HEADERS``."""

    pairs = (part.split("=", 1) for part in (raw or "").split(",") if "=" in part)
    return {key.strip(): value.strip() for key, value in pairs if key.strip()}


def build_tracer_provider(settings: Settings, default_service_name: str) -> TracerProvider | None:
    """Build an OTLP-exporting provider, or ``None`` when no endpoint is set."""

    if not settings.otel_exporter_otlp_endpoint:
        return None
    resource = Resource.create(
        {
            "service.name": settings.otel_service_name or default_service_name,
            "service.namespace": settings.service_name,
            "service.version": settings.service_version,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(
                endpoint=settings.otel_exporter_otlp_endpoint,
                headers=parse_otlp_headers(settings.otel_exporter_otlp_headers),
            )
        )
    )
    return provider


def configure_tracing(app: FastAPI) -> None:
    """Export spans for the ingress routes when an OTLP endpoint is configured."""

    global _tracer_provider
    if _tracer_provider is None:
        settings = get_settings()
        _tracer_provider = build_tracer_provider(settings, settings.service_name)
        if _tracer_provider is None:
            return
        trace.set_tracer_provider(_tracer_provider)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=_tracer_provider)
