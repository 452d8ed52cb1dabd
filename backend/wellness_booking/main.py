"""
Wellness Booking API - Main Application Entry Point

Capacity-limited booking for recurring studio sessions:
- Atomic seat ledger per (session, date), never oversold under concurrency
- Pending reservations paid through hosted Stripe Checkout
- Webhook-driven confirmation with replay-safe status transitions
- Expiry sweep that returns abandoned seats to the pool
- Structured logging with request correlation, Prometheus metrics
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wellness_booking.api.middleware import RequestLoggingMiddleware
from wellness_booking.api.router import api_router
from wellness_booking.core.config import get_settings
from wellness_booking.core.exceptions import BookingError, booking_error_handler
from wellness_booking.core.logging import get_logger, setup_logging
from wellness_booking.core.metrics import metrics_endpoint
from wellness_booking.db.session import build_session_factory, create_engine_from_settings
from wellness_booking.services.booking_service import BookingOrchestrator, run_expiry_sweeper
from wellness_booking.services.cache_service import close_redis, get_cache_stats, get_redis
from wellness_booking.services.email_service import ResendEmailNotifier
from wellness_booking.services.stripe_gateway import StripePaymentGateway

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        studio_timezone=settings.STUDIO_TIMEZONE,
    )

    engine = create_engine_from_settings(settings)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.payment_gateway = StripePaymentGateway(
        settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET
    )
    app.state.notifier = ResendEmailNotifier(settings.RESEND_API_KEY, settings.EMAIL_FROM)

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    sweeper = None
    if settings.EXPIRY_SWEEP_ENABLED:
        orchestrator = BookingOrchestrator(
            app.state.session_factory, app.state.payment_gateway, settings
        )
        sweeper = asyncio.create_task(
            run_expiry_sweeper(orchestrator, settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
        )

    yield

    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Booking API for recurring wellness sessions with paid checkout",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(BookingError, booking_error_handler)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
