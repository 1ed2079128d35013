"""Order sync FastAPI application."""

from typing import Optional

from fastapi import FastAPI

from order_sync import __version__
from order_sync.config.settings import settings
from order_sync.core.logger import setup_logger
from order_sync.core.monitoring import init_error_monitoring
from order_sync.engine import OrderSyncEngine, build_engine
from order_sync.server.routes import router

logger = setup_logger(__name__)


def create_app(engine: Optional[OrderSyncEngine] = None, start_engine: bool = True) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        engine: Prebuilt engine; built from settings on startup when omitted
        start_engine: Run the cold start (cache load, startup sync, polling)

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Multi-Shop Order Sync",
        description="Syncs orders from every configured shop into a local cache",
        version=__version__,
    )
    app.state.engine = engine

    init_error_monitoring(settings)

    @app.on_event("startup")
    async def startup():
        """Build the engine if none was injected, then cold-start it."""
        logger.info("Starting Multi-Shop Order Sync...")
        try:
            if app.state.engine is None:
                app.state.engine = build_engine(settings)
            if start_engine:
                await app.state.engine.start()
        except Exception as e:
            logger.error(f"Failed to start engine: {e}", exc_info=True)
            raise

        snapshot = app.state.engine.snapshot()
        logger.info(
            f"Serving {len(snapshot.orders)} cached orders from {len(snapshot.shop_order_sets)} shop(s), "
            f"polling every {app.state.engine.scheduler.poll_interval_seconds}s"
        )

    @app.on_event("shutdown")
    async def shutdown():
        """Stop polling, cancel background syncs and release the cache."""
        logger.info("Shutting down Multi-Shop Order Sync...")
        if app.state.engine is not None:
            await app.state.engine.close()
        logger.info("Shutdown completed")

    app.include_router(router)

    return app
