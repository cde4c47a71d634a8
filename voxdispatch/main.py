"""FastAPI application: lifespan wiring, liveness probe, error mapping."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI

from .api import router as api_router
from .config import Settings, settings as default_settings
from .database import Store
from .dispatcher import Dispatcher
from .errors import DispatchError
from .health import HealthMonitor
from .llm import IntentResolver
from .registry import ServiceRegistry

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    llm_client: Optional[AsyncOpenAI] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    start_monitor: bool = True,
) -> FastAPI:
    """Build the app. `llm_client` and `transport` replace the real
    OpenAI client and outbound HTTP transport (used by tests)."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = Store(settings.database_url)
        await store.init()

        registry = ServiceRegistry(
            store, docs_path=settings.docs_path, docs_timeout=settings.docs_timeout, transport=transport,
        )
        monitor = HealthMonitor(
            store,
            interval=settings.health_check_interval,
            concurrency=settings.health_check_concurrency,
            probe_timeout=settings.probe_timeout,
            health_path=settings.health_path,
            transport=transport,
        )
        app.state.store = store
        app.state.registry = registry
        app.state.resolver = IntentResolver(registry, model=settings.llm_model, client=llm_client)
        app.state.dispatcher = Dispatcher(
            store, registry, timeout=settings.dispatch_timeout, transport=transport,
        )
        app.state.monitor = monitor

        if start_monitor:
            monitor.start()
        logger.info("Dispatcher started")
        try:
            yield
        finally:
            await monitor.stop()
            await store.close()
            logger.info("Dispatcher shut down")

    app = FastAPI(title="voxdispatch", lifespan=lifespan)
    app.state.settings = settings
    app.include_router(api_router)

    @app.get("/health")
    async def health():
        """Liveness check, no auth required."""
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    _register_error_handlers(app)
    return app


def _register_error_handlers(app: FastAPI):
    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        if exc.http_status >= 500:
            logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body", "code": "VALIDATION_ERROR"},
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )


app = create_app()
