"""FastAPI application factory for the conversation processor."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI

from .errors import register_error_handlers
from .metrics import instrument_app, router as metrics_router
from .routers import audio
from .schemas import HealthResponse
from .services.storage import FileObjectStore
from .services.transcription import TranscriptionQueue
from .services.whisper_engine import WhisperEngine
from .settings import APISettings, get_settings

LOGGER = logging.getLogger("convrec.api")


def create_app(settings: APISettings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        worker = asyncio.create_task(app.state.transcriber.run())
        LOGGER.info("%s %s ready", settings.app_name, settings.version)
        try:
            yield
        finally:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.object_store = FileObjectStore.from_settings(settings)
    app.state.transcriber = TranscriptionQueue(
        app.state.object_store,
        WhisperEngine(settings),
        delay_sec=settings.transcription_delay_sec,
        history=settings.transcription_job_history,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="UP", timestamp=datetime.now(timezone.utc))

    app.include_router(audio.router)
    app.include_router(metrics_router)
    register_error_handlers(app)
    instrument_app(app)
    return app


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run the conversation processor API.")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
