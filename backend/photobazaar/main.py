"""
PhotoBazaar Backend: FastAPI Application Factory
=================================================

What:  Builds the FastAPI app: middleware, exception handlers, routers and
       the startup/shutdown lifecycle.
How:   `create_app()` assembles everything; uvicorn loads the module-level
       `app` (uvicorn photobazaar.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  Rate Limit → Request ID → Logging → GZip   │
    │               → CORS                                     │
    │                                                          │
    │  Routers:     /api/auth  /api/categories  /api/photos    │
    │               /api/purchases  /api/users                 │
    │               /uploads/*  /api/downloads/*  /health      │
    │                                                          │
    │  Errors:      PhotoBazaarError → its status_code         │
    │               request validation → 400                   │
    │               IntegrityError → 409                       │
    │               anything else → 500                        │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config validation (fatal in production) → storage
              directories → create tables when AUTO_CREATE_TABLES is set
    Shutdown: dispose the engine's connection pool
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from photobazaar import __version__
from photobazaar.config import settings
from photobazaar.database import create_tables, dispose_engine
from photobazaar.exceptions import (
    AuthenticationError,
    PhotoBazaarError,
    RateLimitExceededError,
)
from photobazaar.middleware.logging import RequestLoggingMiddleware
from photobazaar.middleware.rate_limit import RateLimitMiddleware
from photobazaar.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware, request_id_var
from photobazaar.routes import auth, categories, files, health, photos, purchases, users

logger = logging.getLogger(__name__)

_HTTP_ERROR_CODES = {
    401: "authentication_required",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
}


def setup_logging() -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2025-03-14T12:00:00 [INFO] photobazaar.services.purchase_service: ...
    Containers capture stdout, so that is the only handler.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.log_level == "DEBUG" else logging.WARNING
    )
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("PhotoBazaar Backend %s starting (%s)", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        raise

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())

    if settings.auto_create_tables:
        await create_tables()
        logger.info("Database tables ensured")

    logger.info(
        "Payment mode: %s | commission: %s | max downloads: %d",
        settings.payment_mode,
        settings.commission_rate,
        settings.max_downloads,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("PhotoBazaar Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


def error_body(
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "success": False,
        "error": error,
        "message": message,
        "details": details or None,
        "request_id": request_id_var.get("") or None,
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map every error to the JSON error envelope.

        PhotoBazaarError        → exc.status_code, exc.error_code
        RequestValidationError  → 400 validation_error
        IntegrityError          → 409 conflict
        HTTPException           → its status
        Exception               → 500 (real message outside production only)

    Context marked internal (storage, database, email failures) is logged but
    never sent to the client.
    """

    @app.exception_handler(PhotoBazaarError)
    async def handle_app_error(request: Request, exc: PhotoBazaarError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.info("[%s] %s: %s", rid, type(exc).__name__, exc.message)

        headers = {}
        if isinstance(exc, AuthenticationError):
            headers["WWW-Authenticate"] = "Bearer"
        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)

        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                exc.error_code,
                exc.message,
                exc.context if exc.expose_context else None,
            ),
            headers=headers or None,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": "Invalid request"}
        message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
        logger.info("[%s] Request validation failed: %s", request_id_var.get(""), message)
        return JSONResponse(
            status_code=400,
            content=error_body("validation_error", message, {"errors": errors}),
        )

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        logger.warning("[%s] Integrity error: %s", request_id_var.get(""), str(exc.orig)[:300])
        return JSONResponse(
            status_code=409,
            content=error_body("conflict", "The request conflicts with existing data"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        message = (
            "An unexpected error occurred. Please try again or contact support."
            if settings.is_production
            else f"{type(exc).__name__}: {exc}"
        )
        return JSONResponse(
            status_code=500,
            content=error_body("internal_server_error", message),
        )


def create_app() -> FastAPI:
    app = FastAPI(
        title="PhotoBazaar API",
        description=(
            "Marketplace for stock photography. Photographers upload and price "
            "photos; buyers browse, like, purchase and download originals."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Added in reverse: the last one added is the outermost
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "Retry-After", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(categories.router)
    app.include_router(photos.router)
    app.include_router(purchases.router)
    app.include_router(users.router)
    app.include_router(files.router)

    return app


app = create_app()
