"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from liquidswap.config import Settings, get_settings
from liquidswap.api import offers, events
from liquidswap.core.errors import OfferError, RateLimited
from liquidswap.core.events import EventBus
from liquidswap.core.logging import setup_logging
from liquidswap.core.rate_limiter import RateLimiter
from liquidswap.database import build_engine, build_session_factory, create_tables

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and its shared services.

    The database engine, session factory, event bus and rate limiter are
    created here and stored on ``app.state``; request handlers reach them
    through dependencies.
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    engine = build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"LiquidSwap API starting (environment: {settings.ENVIRONMENT})")
        if settings.ENVIRONMENT in ("development", "test"):
            await create_tables(engine)
        yield
        logger.info("LiquidSwap API shutting down")
        app.state.event_bus.disconnect_all()
        await engine.dispose()

    app = FastAPI(
        title="LiquidSwap API",
        version="1.0.0",
        description="Trade offer negotiation for a peer-to-peer item swapping marketplace",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.event_bus = EventBus()
    app.state.rate_limiter = RateLimiter.from_settings(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers (the stream route must precede /offers/{offer_id})
    app.include_router(events.router, prefix=settings.API_V1_PREFIX)
    app.include_router(offers.router, prefix=settings.API_V1_PREFIX)
    app.include_router(offers.items_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "LiquidSwap API",
            "version": "1.0.0",
            "docs": "/docs",
            "redoc": "/redoc",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
        }

    @app.exception_handler(OfferError)
    async def offer_error_handler(request: Request, exc: OfferError):
        """Render negotiation errors with their code and status."""
        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(max(1, int(round(exc.retry_after))))}
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.to_detail()},
            headers=headers
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        """Store failures are transient from the client's point of view."""
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=503,
            content={"detail": {
                "code": "STORE_UNAVAILABLE",
                "message": "The trade store is temporarily unavailable. Please try again."
            }}
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent error format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None)
        )

    return app


app = create_app()
