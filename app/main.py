import logging
import time
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import routes
from app.api.rate_limit import BodySizeLimitMiddleware, FixedWindowRateLimiter
from app.config import Settings, settings as default_settings
from app.errors import DispatchError, RateLimitExceeded, StorageUnavailable, ValidationError
from app.logging_config import configure_logging
from app.services.delivery import DeliveryChannel
from app.services.dispatcher import DispatchOrchestrator
from app.services.scheduler import RelayMonitor
from app.services.store import BookingStore

configure_logging()
logger = logging.getLogger(__name__)

REDACTED = "Internal server error"


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Turn pipeline errors into the {success: false, ...} response shape"""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail, "fields": exc.fields},
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        logger.error(
            "request.failed",
            extra={"path": request.url.path, "error_type": type(exc).__name__, "error": exc.detail},
        )
        content = {
            "success": False,
            "message": exc.public_message,
            "error": REDACTED if settings.is_production and exc.redact else exc.detail,
        }
        if exc.booking_id is not None:
            content["bookingId"] = exc.booking_id
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("request.unhandled_error", extra={"path": request.url.path}, exc_info=exc)
        hide = settings.is_production
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": REDACTED,
                "error": None if hide else str(exc),
                "stack": None if hide else "".join(traceback.format_exception(exc)),
            },
        )


def create_app(
    settings: Optional[Settings] = None,
    *,
    channel: Optional[DeliveryChannel] = None,
    store: Optional[BookingStore] = None,
) -> FastAPI:
    """
    Build the application.

    The delivery channel and store are created at startup from settings
    unless provided, and are closed at shutdown.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.channel = channel or DeliveryChannel.from_settings(settings)
        app.state.store = store or BookingStore.from_url(settings.database_url)
        try:
            await app.state.store.create_schema()
        except StorageUnavailable as e:
            # Keep serving; /health reports the database state
            logger.error("store.schema_failed", extra={"error": e.detail})

        app.state.monitor = RelayMonitor(
            app.state.channel,
            retry_seconds=settings.relay_verify_retry_seconds,
            interval_seconds=settings.relay_verify_interval_seconds,
        )
        app.state.monitor.start()
        app.state.orchestrator = DispatchOrchestrator.from_settings(
            settings, app.state.channel, app.state.store
        )
        app.state.started_at = time.monotonic()
        logger.info("server.started", extra={"environment": settings.environment, "port": settings.port})

        yield

        app.state.monitor.stop()
        await app.state.channel.close()
        await app.state.store.close()
        logger.info("server.stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.rate_limiter = FixedWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app, settings)
    app.include_router(routes.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
