"""FastAPI application factory: store, fan-out, pipeline and generator lifecycle."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from vigil.api.routes import router, ws_router
from vigil.config import VigilConfig
from vigil.core.broadcaster import Broadcaster
from vigil.core.generator import LoadGenerator
from vigil.core.pipeline import IngestionPipeline
from vigil.core.store import VigilStore
from vigil.errors import StoreError, VigilError

logger = logging.getLogger("vigil.api")


async def _vigil_error_handler(request: Request, exc: VigilError) -> JSONResponse:
    body: dict = {"error": exc.message}
    if exc.details is not None and not isinstance(exc, StoreError):
        body["details"] = jsonable_encoder(exc.details)
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


def create_app(config: VigilConfig | None = None) -> FastAPI:
    """Build the collector app.

    Args:
        config: Optional pre-loaded config. If None, loads from cwd.
    """
    _config = config or VigilConfig.load()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = VigilStore(_config.db_path, seed=_config.store.seed_on_startup)
        store.open()
        broadcaster = Broadcaster(send_timeout=_config.broadcast.send_timeout)
        pipeline = IngestionPipeline(store, broadcaster)
        app.state.config = _config
        app.state.broadcaster = broadcaster
        app.state.pipeline = pipeline

        generator_task: asyncio.Task | None = None
        if _config.generator.enabled:
            app.state.generator = LoadGenerator(pipeline, _config.generator)
            generator_task = asyncio.create_task(app.state.generator.run())

        logger.info("Collector ready (db=%s)", _config.db_path)
        try:
            yield
        finally:
            if generator_task is not None:
                generator_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await generator_task
            store.close()

    app = FastAPI(title="Vigil APM collector", lifespan=lifespan)
    app.add_exception_handler(VigilError, _vigil_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(router)
    app.include_router(ws_router)
    return app
