"""Prometheus and OpenTelemetry wiring for the transcription worker."""

from __future__ import annotations

import time

from celery import Celery, signals
from opentelemetry import trace
from opentelemetry.instrumentation.celery import CeleryInstrumentor
from prometheus_client import Counter, Histogram, start_http_server

from apps.video_processing.app.core.config import get_settings
from apps.video_processing.app.telemetry import build_tracer_provider

WORKER_JOBS = Counter(
    "transcription_worker_jobs_total",
    "Transcription tasks by final outcome",
    labelnames=("outcome",),
)
WORKER_RETRIES = Counter(
    "transcription_worker_retries_total",
    "Transcription tasks scheduled for another delivery",
)
WORKER_DURATION = Histogram(
    "transcription_worker_task_duration_seconds",
    "Wall time of a task run, including recognition polling",
    labelnames=("outcome",),
    buckets=(1, 10, 30, 60, 300, 600, 1800, 3600),
)

STARTED_AT_HEADER = "transcription_started_at"

_configured = False


def configure_worker_telemetry(app: Celery) -> None:
    """Start the metrics endpoint and hook task signals; safe to call twice."""

    global _configured
    if _configured:
        return

    settings = get_settings()
    if settings.worker_prometheus_port is not None:
        start_http_server(port=settings.worker_prometheus_port, addr=settings.worker_prometheus_host)

    provider = build_tracer_provider(settings, "transcription-worker")
    if provider is not None:
        trace.set_tracer_provider(provider)
        CeleryInstrumentor().instrument(tracer_provider=provider)
    else:
        CeleryInstrumentor().instrument()

    signals.task_prerun.connect(_mark_started, weak=False)
    signals.task_postrun.connect(_record_result, weak=False)
    signals.task_failure.connect(_record_failure, weak=False)
    signals.task_retry.connect(_record_retry, weak=False)
    _configured = True


def _mark_started(task=None, **_: object) -> None:
    setattr(task.request, STARTED_AT_HEADER, time.perf_counter())


def _elapsed(task) -> float | None:
    started = getattr(task.request, STARTED_AT_HEADER, None)
    if started is None:
        return None
    return max(0.0, time.perf_counter() - started)


def _observe(task, outcome: str) -> None:
    WORKER_JOBS.labels(outcome=outcome).inc()
    duration = _elapsed(task) if task is not None else None
    if duration is not None:
        WORKER_DURATION.labels(outcome=outcome).observe(duration)


def _record_result(task=None, retval=None, state: str | None = None, **_: object) -> None:
    # Failures and retries are counted by their own signals.
    if state != "SUCCESS":
        return
    outcome = retval.get("status", "unknown") if isinstance(retval, dict) else "unknown"
    _observe(task, outcome)


def _record_failure(sender=None, **_: object) -> None:
    _observe(sender, "failed")


def _record_retry(**_: object) -> None:
    WORKER_RETRIES.inc()
