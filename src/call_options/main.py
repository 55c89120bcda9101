"""
Main entry point for the Call Options service.

FastAPI application exposing the decision API, with the Asterisk ARI consumer
started alongside it when enabled.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, HTTPException

from call_options.config import get_settings, load_settings, set_settings
from call_options.handlers import decision_handler
from call_options.handlers.asterisk_ari_handler import AsteriskARIHandler
from call_options.models.api_models import HealthCheckResponse, ReloadResponse
from call_options.services.call_controller import CallController
from call_options.services.policy_store import PolicyStore
from call_options.utils.exceptions import ConfigurationException, PolicyStoreUnavailable
from call_options.utils.logger import setup_logger, get_logger

# Setup logging
setup_logger()
logger = get_logger(__name__)

# Global service instances
policy_store: PolicyStore = None
call_controller: CallController = None
ari_handler: AsteriskARIHandler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    global policy_store, call_controller, ari_handler

    # Startup
    logger.info("Starting Call Options service...")

    settings = get_settings()
    logger.info(f"Configuration: {settings.describe()}")

    policy_store = PolicyStore(settings)
    policy_store.init()
    if await asyncio.to_thread(policy_store.health_check):
        logger.info("Database connection: successful")
    else:
        logger.warning("Database connection failed, decisions will use their fallbacks until it recovers")

    call_controller = CallController(policy_store)
    decision_handler.init_handler(call_controller)

    if settings.ari_enabled:
        ari_handler = AsteriskARIHandler(
            host=settings.ari_host,
            port=settings.ari_port,
            username=settings.ari_username,
            password=settings.ari_password.get_secret_value(),
            app_name=settings.ari_app_name,
            call_controller=call_controller,
        )
        await ari_handler.start()
    else:
        logger.info("Asterisk ARI disabled (set ARI_ENABLED=true to enable)")

    logger.info("Call Options service started successfully")

    yield

    # Shutdown
    logger.info("Call Options service shutting down...")

    if ari_handler:
        try:
            await ari_handler.stop()
        except Exception as e:
            logger.error(f"Error stopping ARI handler: {e}")
        ari_handler = None

    if policy_store:
        policy_store.close()


# Initialize FastAPI app
app = FastAPI(
    title="Call Options Service",
    version="1.0.0",
    description="Per-call policy decisions: account, blocking, recording and caller id",
    lifespan=lifespan
)

app.include_router(decision_handler.router)


@app.get("/health")
async def health_check() -> HealthCheckResponse:
    """
    Health check endpoint for monitoring.

    Returns:
        HealthCheckResponse with service status
    """
    db_ok = policy_store is not None and await asyncio.to_thread(policy_store.health_check)

    if ari_handler is None:
        ari_status = "disabled"
    else:
        ari_status = "ok" if ari_handler.running else "error"

    if db_ok and ari_status != "error":
        overall_status = "ok"
    elif db_ok or ari_status == "ok":
        overall_status = "degraded"
    else:
        overall_status = "error"

    return HealthCheckResponse(
        status=overall_status,
        database="ok" if db_ok else "error",
        ari=ari_status,
        timestamp=datetime.utcnow()
    )


@app.post("/admin/reload")
async def reload_configuration() -> ReloadResponse:
    """
    Reload the configuration.

    The new settings are validated in full first. When the database
    parameters changed, a new store is connected before anything is
    published; if that fails, the previous settings and store stay in place.

    Returns:
        ReloadResponse with the configuration now in effect
    """
    global policy_store, call_controller

    old_settings = get_settings()
    try:
        settings = load_settings()
    except ConfigurationException as e:
        logger.error(f"Configuration reload rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    new_store = None
    if policy_store is None or settings.store_key() != old_settings.store_key():
        new_store = PolicyStore(settings)
        try:
            new_store.init()
        except PolicyStoreUnavailable as e:
            logger.error(f"New policy store could not be created, keeping current configuration: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    set_settings(settings)
    logger.info(f"Configuration reloaded: {settings.describe()}")

    if new_store is not None:
        old_store = policy_store
        policy_store = new_store
        call_controller = CallController(policy_store)
        decision_handler.init_handler(call_controller)
        if ari_handler:
            ari_handler.call_controller = call_controller

        if old_store:
            old_store.close()

    return ReloadResponse(
        status="reloaded",
        store_rebuilt=new_store is not None,
        configuration=settings.describe(),
    )


def main():
    """Main entry point for running the service."""
    import uvicorn

    settings = get_settings()

    logger.info(f"Starting Call Options service on {settings.host}:{settings.port}")

    uvicorn.run(
        "call_options.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False
    )


if __name__ == "__main__":
    main()
