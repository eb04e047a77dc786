"""
Live Bet Tracker - FastAPI Application
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
import uvicorn

from core.cache import CacheService
from core.config import settings
from core.logging import setup_logging
from api.errors import register_error_handlers
from api.routes import router as market_router
from api.bets import router as bets_router
from api.websocket import router as ws_router, ConnectionManager
from services.bet_status import BetStatusService
from services.bet_store import BetStore
from services.broadcaster import LiveBroadcaster
from services.crypto_service import CryptoService, default_crypto_providers
from services.stock_service import StockService, default_stock_providers
from services.usage_tracker import UsageTracker
from services.wallet_sync import WalletSyncService
from services.weather_service import WeatherService, default_weather_providers


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    setup_logging(settings.log_level)
    logger.info(f"Starting {settings.app_name}...")

    # Cache
    app.state.cache = CacheService(
        redis_url=settings.redis_url,
        stale_retention_seconds=settings.cache_stale_retention_seconds,
    )
    await app.state.cache.connect()

    # Initialize services
    usage = UsageTracker(settings.daily_limits)
    app.state.usage_tracker = usage
    app.state.crypto_service = CryptoService(app.state.cache, default_crypto_providers(usage))
    app.state.stock_service = StockService(app.state.cache, default_stock_providers(usage))
    app.state.weather_service = WeatherService(app.state.cache, default_weather_providers(usage))
    app.state.bet_store = BetStore(settings.bets_file)
    app.state.bet_status = BetStatusService(
        app.state.bet_store,
        app.state.crypto_service,
        app.state.stock_service,
        app.state.weather_service,
    )
    app.state.wallet_sync = WalletSyncService(
        app.state.bet_store,
        app.state.cache,
        app.state.crypto_service,
        usage=usage,
    )
    app.state.connection_manager = ConnectionManager()
    app.state.broadcaster = LiveBroadcaster(
        app.state.bet_store,
        app.state.crypto_service,
        app.state.stock_service,
        app.state.weather_service,
        app.state.connection_manager,
    )

    # Start background tasks
    if settings.enable_websocket:
        app.state.broadcaster.start()

    logger.info(f"Application started successfully (cache: {app.state.cache.backend})")

    yield

    # Cleanup
    logger.info("Shutting down...")

    await app.state.broadcaster.stop()
    await app.state.crypto_service.close()
    await app.state.stock_service.close()
    await app.state.weather_service.close()
    await app.state.wallet_sync.close()
    await app.state.cache.disconnect()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        description="Live status and P&L for Polymarket bets against crypto, stock and weather feeds",
        version=settings.version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Include routers
    app.include_router(market_router, prefix="/api")
    app.include_router(bets_router, prefix="/api")
    app.include_router(ws_router, prefix="/ws")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        cache = getattr(app.state, "cache", None)
        return {
            "status": "healthy",
            "version": settings.version,
            "environment": settings.environment,
            "cache": cache.backend if cache else None,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
