"""Main FastAPI application"""
import logging
import logging.config
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from config import Settings, settings as default_settings
from routes import router as api_router
from services.errors import ExpenseNotFoundError, ExpenseValidationError, StoreError
from services.expense_store import ensure_indexes


def build_logging_config(level: str) -> dict:
    """Unified logging configuration: app and uvicorn loggers all go through Rich."""
    handler = {
        "class": "rich.logging.RichHandler",
        "formatter": "default",
        "level": "DEBUG",
        "rich_tracebacks": True,
        "show_time": True,
        "show_path": False,
        "log_time_format": "%Y-%m-%d %H:%M:%S",
        "markup": False,
    }
    quiet = {"handlers": ["default"], "level": "INFO", "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {"default": handler},
        "loggers": {
            "uvicorn": quiet,
            "uvicorn.error": quiet,
            "uvicorn.access": quiet,
            "": {"handlers": ["default"], "level": level, "propagate": False},
        },
    }


logging.config.dictConfig(build_logging_config(default_settings.log_level))
logger = logging.getLogger(__name__)


def _error_body(error, exc: Optional[Exception], settings: Settings) -> dict:
    body = {"success": False, "error": error}
    if exc is not None and not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Maps expense errors onto the {success, error} response envelope."""

    @app.exception_handler(ExpenseValidationError)
    async def validation_error_handler(request: Request, exc: ExpenseValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": exc.messages})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        messages = [error.get("msg", "Invalid request") for error in exc.errors()]
        return JSONResponse(status_code=400, content={"success": False, "error": messages})

    @app.exception_handler(ExpenseNotFoundError)
    async def not_found_handler(request: Request, exc: ExpenseNotFoundError):
        return JSONResponse(status_code=404, content={"success": False, "error": "Expense not found"})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Error: {exc}")
        return JSONResponse(status_code=500, content=_error_body(str(exc), exc, settings))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content=_error_body(str(exc) or "Server Error", exc, settings))


def create_app(settings: Settings = default_settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: Connect to MongoDB
        logger.info(f"Connecting to MongoDB database '{settings.db_name}'...")
        app.state.db_client = None
        try:
            app.state.db_client = AsyncIOMotorClient(
                settings.mongodb_uri, serverSelectionTimeoutMS=settings.mongodb_timeout_ms
            )
            app.state.expenses_collection = app.state.db_client[settings.db_name].get_collection(settings.collection_name)
            await app.state.db_client.admin.command('ping')
            logger.info("MongoDB ping successful.")
            await ensure_indexes(app.state.expenses_collection)
        except Exception as e:
            # Keep serving: requests fail with a store error until MongoDB is reachable
            logger.error(f"Failed to connect to MongoDB: {e}")

        yield # Application runs here

        # Shutdown: Close MongoDB connection
        if app.state.db_client is not None:
            logger.info("Closing MongoDB connection...")
            app.state.db_client.close()
            logger.info("MongoDB connection closed.")

    app = FastAPI(
        title="Expense Tracker API",
        description="API for recording expenses and reporting totals by category and month.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Rate limiting is opt-in through RATE_LIMIT; routes.enforce_rate_limit applies it per request
    if settings.rate_limit:
        app.state.limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
        app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    register_exception_handlers(app, settings)

    @app.get("/health", tags=["health"])
    async def health(request: Request):
        client = getattr(request.app.state, "db_client", None)
        database = "down"
        if client is not None:
            try:
                await client.admin.command('ping')
                database = "up"
            except Exception as e:
                logger.warning(f"MongoDB ping failed: {e}")
        return {"status": "ok", "database": database}

    app.include_router(api_router, prefix="/api", tags=["expenses"])
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=not default_settings.is_production,
    )
