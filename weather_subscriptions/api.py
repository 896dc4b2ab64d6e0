"""
REST API module for the Weather Subscriptions service.

Provides endpoints for:
- Current weather lookup by city
- Subscription lifecycle (subscribe, confirm, unsubscribe)
- Service health and scheduled delivery results
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from .database import SubscriptionStore
from .dispatcher import NotificationDispatcher
from .errors import WeatherServiceError
from .fetcher import WeatherFetcher
from .mailer import ConsoleMailer, Mailer, SMTPMailer
from .scheduler import WeatherScheduler
from .settings import Settings
from .subscriptions import SubscriptionService

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# =============================================================================
# Pydantic Models
# =============================================================================

class WeatherResponse(BaseModel):
    temperature: float
    humidity: int
    description: str


class MessageResponse(BaseModel):
    message: str


class BatchResultModel(BaseModel):
    frequency: str
    started_at: str
    finished_at: Optional[str]
    total: int
    sent: int
    failed: int
    skipped: bool
    errors: List[str]


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    database: str
    scheduler: str
    weather_provider: str
    uptime: str
    subscriptions: Dict[str, Any]
    next_runs: Dict[str, Optional[str]]
    daily_send_hour: int
    last_batches: List[BatchResultModel]


# =============================================================================
# Collaborators
# =============================================================================

def create_mailer(settings: Settings) -> Mailer:
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not set - outgoing mail will only be logged")
        return ConsoleMailer()
    return SMTPMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.mail_from,
        timeout=settings.smtp_timeout
    )


def get_uptime(start_time: Optional[datetime]) -> str:
    """Get formatted uptime string."""
    if not start_time:
        return "N/A"
    delta = datetime.utcnow() - start_time
    hours, remainder = divmod(int(delta.total_seconds()), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}h {minutes}m {seconds}s"


def get_service(request: Request) -> SubscriptionService:
    return request.app.state.service


def get_scheduler(request: Request) -> WeatherScheduler:
    return request.app.state.scheduler


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[SubscriptionStore] = None,
    fetcher: Optional[WeatherFetcher] = None,
    mailer: Optional[Mailer] = None,
    start_scheduler: Optional[bool] = None
) -> FastAPI:
    """
    Build the application.

    Collaborators not passed in are created in the lifespan handler from
    settings and closed on shutdown; injected ones are left to the caller.
    """
    settings = settings or Settings.from_env()
    if start_scheduler is None:
        start_scheduler = settings.scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting Weather Subscriptions service...")
        owned = []

        app_store = store
        if app_store is None:
            app_store = SubscriptionStore(settings.database_path)
            owned.append(app_store)

        app_fetcher = fetcher
        if app_fetcher is None:
            if not settings.weather_api_key:
                logger.warning("WEATHER_API_KEY not set - every weather lookup will fail")
            app_fetcher = WeatherFetcher(
                settings.weather_api_key,
                api_url=settings.weather_api_url,
                timeout=settings.weather_api_timeout
            )
            owned.append(app_fetcher)

        app_mailer = mailer
        if app_mailer is None:
            app_mailer = create_mailer(settings)
            owned.append(app_mailer)

        dispatcher = NotificationDispatcher(app_store, app_fetcher, app_mailer)
        scheduler = WeatherScheduler(dispatcher, daily_send_hour=settings.daily_send_hour)

        app.state.store = app_store
        app.state.fetcher = app_fetcher
        app.state.mailer = app_mailer
        app.state.dispatcher = dispatcher
        app.state.scheduler = scheduler
        app.state.service = SubscriptionService(
            app_store, app_fetcher, app_mailer, base_url=settings.base_url
        )
        app.state.start_time = datetime.utcnow()

        if start_scheduler:
            scheduler.start()
        else:
            logger.info("Scheduler disabled")

        yield

        # Shutdown
        logger.info("Shutting down...")
        scheduler.stop()
        for component in reversed(owned):
            component.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Weather Subscriptions API",
        description="Current weather and scheduled weather emails for confirmed subscribers",
        version=API_VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    register_routes(app)

    if os.path.isdir(settings.static_dir):
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WeatherServiceError)
    async def service_error_handler(request: Request, exc: WeatherServiceError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_routes(app: FastAPI) -> None:

    # =========================================================================
    # API Endpoints - Weather
    # =========================================================================

    @app.get("/api/weather", response_model=WeatherResponse, tags=["Weather"])
    def get_weather(
        city: Optional[str] = Query(default=None),
        service: SubscriptionService = Depends(get_service)
    ):
        """Get current weather for a city."""
        conditions = service.get_current_weather(city)
        return WeatherResponse(
            temperature=conditions.temperature_celsius,
            humidity=conditions.humidity_percent,
            description=conditions.condition_text
        )

    # =========================================================================
    # API Endpoints - Subscriptions
    # =========================================================================

    @app.post("/api/subscribe", response_model=MessageResponse, tags=["Subscriptions"])
    def subscribe(
        email: Optional[str] = Query(default=None),
        city: Optional[str] = Query(default=None),
        frequency: Optional[str] = Query(default=None),
        service: SubscriptionService = Depends(get_service)
    ):
        """Subscribe an email to weather updates; sends a confirmation link."""
        return MessageResponse(message=service.subscribe(email, city, frequency))

    @app.get("/api/confirm/{token}", response_model=MessageResponse, tags=["Subscriptions"])
    def confirm(token: str, service: SubscriptionService = Depends(get_service)):
        """Confirm a subscription from the emailed link."""
        return MessageResponse(message=service.confirm(token))

    @app.get("/api/unsubscribe/{token}", response_model=MessageResponse, tags=["Subscriptions"])
    def unsubscribe(token: str, service: SubscriptionService = Depends(get_service)):
        """Remove a subscription."""
        return MessageResponse(message=service.unsubscribe(token))

    # =========================================================================
    # API Endpoints - Status
    # =========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health_check(request: Request, scheduler: WeatherScheduler = Depends(get_scheduler)):
        """Health check endpoint."""
        state = request.app.state
        database_ok = state.store.ping()
        provider = state.fetcher.get_health() if hasattr(state.fetcher, "get_health") else {}
        provider_ok = provider.get("configured", True) and provider.get("consecutive_failures", 0) < 3

        scheduler_status = scheduler.get_scheduler_status()

        degraded = not database_ok or not provider_ok
        if state.settings.scheduler_enabled and not scheduler_status["is_running"]:
            degraded = True

        return HealthResponse(
            status="degraded" if degraded else "healthy",
            timestamp=datetime.utcnow().isoformat(),
            database="connected" if database_ok else "unavailable",
            scheduler="running" if scheduler_status["is_running"] else "stopped",
            weather_provider="ok" if provider_ok else "unavailable",
            uptime=get_uptime(getattr(state, "start_time", None)),
            subscriptions=state.store.get_summary() if database_ok else {},
            next_runs=scheduler_status["next_runs"],
            daily_send_hour=scheduler_status["daily_send_hour"],
            last_batches=[BatchResultModel(**r) for r in scheduler_status["last_results"]]
        )

    @app.get("/dispatch/results", response_model=List[BatchResultModel], tags=["Admin"])
    def get_dispatch_results(scheduler: WeatherScheduler = Depends(get_scheduler)):
        """Get results from the last batch of each tier."""
        return [BatchResultModel(**asdict(r)) for r in scheduler.get_last_results()]


app = create_app()
