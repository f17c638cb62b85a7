"""fleetpath server — main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, storage, and API layers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TextIO

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fleetpath.api.aggregates import router as aggregates_router
from fleetpath.api.monitoring import router as monitoring_router
from fleetpath.api.paths import router as paths_router
from fleetpath.api.telemetry import router as telemetry_router
from fleetpath.config import AppConfig, load_config
from fleetpath.core.processor import TelemetryProcessor
from fleetpath.core.service import PathTrackingService
from fleetpath.core.stats import ServerStats
from fleetpath.core.validation import InvalidInput
from fleetpath.storage.file_storage import FileTelemetryStorage

log = structlog.get_logger()

# Module-level singletons (set during startup)
_processor: TelemetryProcessor | None = None
_service: PathTrackingService | None = None
_stats: ServerStats | None = None
_config: AppConfig | None = None
_log_file: TextIO | None = None


def get_processor() -> TelemetryProcessor:
    assert _processor is not None, "Server not initialized"
    return _processor


def get_service() -> PathTrackingService:
    assert _service is not None, "Server not initialized"
    return _service


def get_stats() -> ServerStats:
    assert _stats is not None, "Server not initialized"
    return _stats


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    global _log_file

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=not config.logging.file))

    _close_log_file()
    logger_factory = None
    if config.logging.file:
        _log_file = open(config.logging.file, "a", encoding="utf-8")
        logger_factory = structlog.WriteLoggerFactory(file=_log_file)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
        logger_factory=logger_factory or structlog.PrintLoggerFactory(),
    )


def _close_log_file() -> None:
    global _log_file

    if _log_file is not None:
        structlog.configure(logger_factory=structlog.PrintLoggerFactory())
        _log_file.close()
        _log_file = None


def init_components(config: AppConfig) -> None:
    """Create the singletons from a config."""
    global _processor, _service, _stats, _config

    _config = config
    _stats = ServerStats(active_window_seconds=config.limits.active_window_seconds)
    storage = FileTelemetryStorage(base_dir=config.storage.base_dir)
    _processor = TelemetryProcessor(storage=storage, stats=_stats)
    _service = PathTrackingService(storage=storage)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    config = load_config()
    _setup_logging(config)

    log.info("server_starting",
             env=config.server.env,
             storage_dir=config.storage.base_dir)

    if _config is None:
        init_components(config)

    log.info("server_started",
             host=config.server.host,
             port=config.server.port)

    yield

    log.info("server_stopped")
    _close_log_file()


app = FastAPI(
    title="fleetpath",
    description="Fleet telemetry path segmentation and analytics",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput) -> JSONResponse:
    log.info("invalid_input", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=422, content={"error": str(exc), **exc.to_dict()})


app.include_router(telemetry_router)
app.include_router(paths_router)
app.include_router(aggregates_router)
app.include_router(monitoring_router)
