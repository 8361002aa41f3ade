from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from .api.routes import api_router
from .core.errors import InvalidArgumentError, OperationTimeoutError, StorageError
from .core.logging import configure_logging
from .core.settings import Settings, get_settings
from .observability.tracing import configure_tracing
from .scheduling import DailyAggregationScheduler
from .services.market_metrics import MarketMetricsService, build_service

APP_VERSION = "0.1.0"
SERVICE_NAME = "marketpulse"


def _build_lifespan(app_settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app_settings.create_schema_on_startup:
            from .db.session import create_schema

            await create_schema()
            logger.info("Database schema ensured", database_url=app_settings.database_url.split("@")[-1])

        if getattr(app.state, "market_service", None) is None:
            app.state.market_service = build_service(app_settings)
        service: MarketMetricsService = app.state.market_service

        scheduler = DailyAggregationScheduler(
            service,
            cron=app_settings.aggregation_cron,
            timezone=app_settings.aggregation_timezone,
        )
        app.state.aggregation_scheduler = scheduler
        if app_settings.aggregation_scheduler_enabled:
            scheduler.start()
            logger.info(
                "Aggregation scheduler enabled",
                cron=app_settings.aggregation_cron,
                timezone=app_settings.aggregation_timezone,
            )
        else:
            logger.info(
                "Aggregation scheduler disabled",
                reason="aggregation_scheduler_enabled is false",
            )

        try:
            yield
        finally:
            if scheduler.is_running:
                await scheduler.stop()

    return lifespan


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidArgumentError)
    async def _invalid_argument(request: Request, exc: InvalidArgumentError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
        logger.bind(operation=exc.operation).error("Storage failure while serving request", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Metric storage unavailable", "operation": exc.operation},
        )

    @app.exception_handler(OperationTimeoutError)
    async def _timeout(request: Request, exc: OperationTimeoutError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            content={"detail": str(exc), "operation": exc.operation},
        )


def create_app(service: MarketMetricsService | None = None, *, app_settings: Settings | None = None) -> FastAPI:
    """Application factory for the marketplace metrics service."""
    config = app_settings or get_settings()
    configure_logging(
        service_name=SERVICE_NAME,
        environment=config.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="MarketPulse API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=_build_lifespan(config),
    )
    app.state.market_service = service

    if config.tracing_enabled:
        configure_tracing(
            app,
            service_name=SERVICE_NAME,
            service_version=APP_VERSION,
            environment=config.environment,
        )

    _install_error_handlers(app)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": config.environment,
            "version": APP_VERSION,
        }

    return app
