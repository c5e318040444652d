"""FastAPI application entry point for ChargeGuard."""

import asyncio
import contextlib
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chargeguard.api.middleware.error_handler import global_exception_handler
from chargeguard.api.middleware.logging import StructuredLoggingMiddleware
from chargeguard.api.routes.fraud import router as fraud_router
from chargeguard.api.routes.health import router as health_router
from chargeguard.api.routes.merchants import router as merchants_router
from chargeguard.api.routes.monitoring import router as monitoring_router
from chargeguard.api.routes.orders import router as orders_router
from chargeguard.config import settings
from chargeguard.domains.fraud.config import FusionConfig
from chargeguard.domains.fraud.pipeline import RiskFusionPipeline
from chargeguard.domains.monitoring.config import MonitoringConfig
from chargeguard.domains.monitoring.scheduler import MonitoringScheduler
from chargeguard.domains.orders.config import OrderQueueConfig
from chargeguard.domains.orders.processor import OrderProcessor
from chargeguard.shared.errors import ChargeGuardError
from chargeguard.shared.logging import setup_logging

logger = structlog.get_logger()

# Track app start time for uptime calculation
APP_START_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown logic."""
    global APP_START_TIME
    APP_START_TIME = time.time()
    setup_logging(settings.log_level, json_logs=not settings.debug)

    logger.info(
        "chargeguard_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    from chargeguard.db.database import init_db

    await init_db()

    # Kafka is best-effort: without it high-risk events are only logged.
    producer = None
    consumer = None
    consumer_task: asyncio.Task | None = None
    if settings.kafka_enabled:
        try:
            from chargeguard.consumers.order_consumer import OrderConsumer
            from chargeguard.shared.kafka_utils import create_producer

            producer = await create_producer(settings.kafka_bootstrap_servers)
            consumer = OrderConsumer(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                group_id=settings.kafka_consumer_group,
                topic=settings.orders_topic,
            )
            consumer_task = asyncio.create_task(consumer.start())
            logger.info("kafka_started", orders_topic=settings.orders_topic)
        except Exception:
            logger.warning("kafka_failed_to_start", exc_info=True)

    fusion_config = FusionConfig.from_env()
    queue_config = OrderQueueConfig.from_env()
    queue_config.batch_size = settings.order_batch_size

    app.state.pipeline = RiskFusionPipeline(config=fusion_config)
    app.state.order_processor = OrderProcessor(
        pipeline=app.state.pipeline,
        config=queue_config,
        kafka_producer=producer,
    )
    app.state.monitoring_scheduler = MonitoringScheduler(config=MonitoringConfig.from_env())

    ticker = None
    if settings.scheduler_enabled:
        from chargeguard.jobs.ticker import BackgroundTicker

        ticker = BackgroundTicker(
            scheduler=app.state.monitoring_scheduler,
            processor=app.state.order_processor,
            tick_minutes=settings.monitoring_tick_minutes,
            processing_interval_seconds=settings.order_processing_interval_seconds,
            batch_size=settings.order_batch_size,
        )
        ticker.start()

    yield

    if ticker is not None:
        ticker.stop()
    if consumer is not None:
        with contextlib.suppress(Exception):
            await consumer.stop()
    if consumer_task is not None:
        consumer_task.cancel()
    if producer is not None:
        with contextlib.suppress(Exception):
            await producer.stop()
    logger.info("chargeguard_shutting_down")


app = FastAPI(
    title="ChargeGuard",
    description="Pre-authorization risk fusion and post-authorization chargeback monitoring",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Structured logging middleware
app.add_middleware(StructuredLoggingMiddleware)

# Exception handlers
for exc_type in (ChargeGuardError, ValueError, PermissionError, LookupError, Exception):
    app.add_exception_handler(exc_type, global_exception_handler)

# Register routers
app.include_router(health_router)
app.include_router(orders_router)
app.include_router(monitoring_router)
app.include_router(merchants_router)
app.include_router(fraud_router)


def get_uptime() -> int:
    """Get application uptime in seconds."""
    if APP_START_TIME == 0.0:
        return 0
    return int(time.time() - APP_START_TIME)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "chargeguard.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
