from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pymongo.errors import PyMongoError
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import time

from app.core.config import Settings
from app.core.errors import AppError, PayloadTooLargeError, collect_field_errors
from app.database.mongodb import MongoDB
from app.models.contact import REQUIRED_MESSAGES
from app.routes import contacts
from app.schemas.response import error_body
from app.services.email_service import EmailService
from app.utils.logger import setup_logger
from app.utils.rate_limit import FixedWindowRateLimiter

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again later."

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'self'; style-src 'self' 'unsafe-inline'",
}

BODY_METHODS = ("POST", "PUT", "PATCH", "DELETE")


async def body_too_large(request: Request, limit: int) -> bool:
    if request.method not in BODY_METHODS:
        return False

    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        return int(content_length) > limit

    # Chunked uploads carry no length, so measure the body itself.
    # The middleware caches it for the route to read again.
    body = await request.body()
    return len(body) > limit


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("contacts")

    # Startup. A failed connection is fatal and stops the server.
    await app.state.mongodb.connect()
    if app.state.email_service.is_configured():
        logger.info("📧 Email service is ready")

    logger.info(f"🚀 {app.state.settings.APP_NAME} started ({app.state.settings.ENVIRONMENT})")
    yield
    # Shutdown
    await app.state.mongodb.close()
    logger.info("🛑 Application shutdown")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    logger = setup_logger(settings)

    # ⚙️ Initialize FastAPI app
    app = FastAPI(
        title=settings.APP_NAME,
        description="Contact form intake and admin API",
        version="1.0.0",
        docs_url=f"{settings.API_PREFIX}/docs",
        redoc_url=f"{settings.API_PREFIX}/redoc",
        lifespan=lifespan,
    )

    # Everything components need is built once here and handed out via app.state
    app.state.settings = settings
    app.state.mongodb = MongoDB(settings)
    app.state.email_service = EmailService(settings)
    app.state.rate_limiter = FixedWindowRateLimiter(
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
    )

    # 🛡️ Body size cap, security headers and request logging
    @app.middleware("http")
    async def guard_and_log(request: Request, call_next):
        started = time.perf_counter()

        if await body_too_large(request, settings.MAX_BODY_SIZE):
            error = PayloadTooLargeError()
            response = JSONResponse(status_code=error.status_code, content=error_body(error.message))
        else:
            response = await call_next(request)

        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        for header, value in getattr(request.state, "rate_limit_headers", {}).items():
            response.headers.setdefault(header, value)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} - {elapsed_ms:.1f} ms")
        return response

    # 🌍 CORS Configuration (any origin is accepted in development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_origin_regex=".*" if settings.is_development else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # 🗜️ Compress larger responses
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # 🧩 Include Routers
    app.include_router(contacts.router, prefix=settings.API_PREFIX, tags=["contacts"])

    @app.get("/")
    async def root():
        return {
            "status": "success",
            "message": f"Welcome to {settings.COMPANY_NAME} API",
            "version": "1.0.0",
            "endpoints": {
                "health": "/health",
                "contacts": f"{settings.API_PREFIX}/contacts",
            },
        }

    # 💓 Health Check Endpoint
    @app.get("/health")
    async def health_check():
        return {
            "status": "success",
            "message": "Server is running",
            "environment": settings.ENVIRONMENT,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # 🚨 Exception Handlers
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{exc.__class__.__name__}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.errors),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("Validation failed", collect_field_errors(exc.errors(), REQUIRED_MESSAGES)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = f"Can't find {request.url.path} on this server"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(PyMongoError)
    async def database_error_handler(request: Request, exc: PyMongoError):
        logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(GENERIC_ERROR_MESSAGE),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Global error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(GENERIC_ERROR_MESSAGE),
        )

    return app


app = create_app()

# 🏁 Run App
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=app.state.settings.PORT,
        reload=False,
        log_level="info",
    )
