"""Prometheus instrumentation for the upload and transcription paths."""

from __future__ import annotations

import time
from typing import Callable

from fastapi import APIRouter, FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

REQUEST_COUNTER = Counter(
    "api_requests_total",
    "HTTP requests served, by route template",
    labelnames=("path", "method", "status"),
)
REQUEST_LATENCY = Histogram(
    "api_request_latency_seconds",
    "HTTP request latency, by route template",
    labelnames=("path", "method"),
)
UPLOAD_COUNTER = Counter(
    "audio_uploads_total",
    "Audio uploads by outcome (success, rejected, error)",
    labelnames=("status",),
)
UPLOAD_BYTES = Histogram(
    "audio_upload_bytes",
    "Decoded size of uploaded audio",
    buckets=(16_384, 65_536, 262_144, 1_048_576, 4_194_304, 16_777_216, 67_108_864),
)
TRANSCRIPTION_COUNTER = Counter(
    "transcription_jobs_total",
    "Transcription jobs finished, by outcome",
    labelnames=("status",),
)
TRANSCRIPTION_QUEUE_DEPTH = Gauge(
    "transcription_queue_depth",
    "Jobs accepted but not yet processed",
)

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def instrument_app(app: FastAPI) -> FastAPI:
    @app.middleware("http")
    async def record_request(request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)
        started = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        REQUEST_COUNTER.labels(path=path, method=request.method, status=response.status_code).inc()
        REQUEST_LATENCY.labels(path=path, method=request.method).observe(time.perf_counter() - started)
        return response

    return app
