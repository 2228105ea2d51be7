"""TrustLend API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map TrustLendError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - LendingService is connected on startup and drained on shutdown via lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - create_app() accepts a prebuilt LendingService so tests can inject a
      VirtualClock/SimulatedLedger wiring
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trustlend.api.error_handlers import register_error_handlers
from trustlend.api.routes import accounts, credit, health, loans
from trustlend.config import Settings, get_settings
from trustlend.infrastructure.observability import setup_logging
from trustlend.services.lending_service import LendingService, create_lending_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, settings.log_format)
    service: LendingService = app.state.lending
    await service.start()
    logger.info("TrustLend API started")
    yield
    logger.info("TrustLend API shutting down")
    await service.shutdown()


def create_app(
    settings: Settings | None = None, service: LendingService | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="TrustLend API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.lending = service or create_lending_service(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(accounts.router)
    app.include_router(credit.router)
    app.include_router(loans.router)

    register_error_handlers(app)
    return app


app = create_app()
