# src/main.py
"""
FastAPI application for the residency-club security layer.

Wires rate limiting, security headers, input sanitization, token/session
management and audit logging around the auth endpoints. The security
context is created in the lifespan (or injected by tests) and swept
periodically for expired records.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from contextlib import asynccontextmanager
from typing import Optional
import logging

from src.api.auth_routes import Authenticator, reject_all, router as auth_router
from src.api.dependencies import security_event
from src.core.config import Settings, settings, validate_required_settings
from src.core.exceptions import (
    CSRFValidationError,
    InputValidationError,
    PermissionDeniedError,
    SecurityConfigurationError,
    SecurityServiceError,
    TokenError,
)
from src.core.logging_config import setup_logging
from src.core.rate_limit_config import limiter, rate_limit_exceeded_handler
from src.core.security import (
    SecurityContext,
    Severity,
    build_security,
    create_security_store,
    get_security,
    set_security,
)
from src.middleware.security_middleware import SecurityHeadersMiddleware

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the security context on startup, sweep it, tear it down on shutdown"""
    config: Settings = app.state.settings

    logger.info("=" * 60)
    logger.info(f"🚀 {config.APP_NAME} starting...")
    logger.info("=" * 60)

    validate_required_settings(config)

    context: Optional[SecurityContext] = getattr(app.state, "security", None)
    if context is None:
        store, redis_service = await create_security_store(config)
        context = build_security(config, store=store, redis_service=redis_service)
        app.state.security = context

    set_security(context)
    context.maintenance.start()

    logger.info("✅ Security layer ready")

    yield

    logger.info(f"🛑 {config.APP_NAME} shutting down...")
    await context.shutdown()
    set_security(None)


def _audit_failure(request: Request, action: str, severity: Severity, details=None) -> None:
    try:
        get_security().audit.log_security_event(
            security_event(request, action, False, severity=severity, details=details)
        )
    except SecurityConfigurationError:
        logger.warning(f"Security layer not initialized, {action} failure not audited")


async def on_token_error(request: Request, exc: TokenError) -> JSONResponse:
    # Revoked, expired and invalid tokens look the same to the client
    _audit_failure(request, "token_verification", Severity.MEDIUM,
                   details={"reason": type(exc).__name__, "token_type": exc.token_type})
    return JSONResponse(status_code=401, content={"error": "Invalid or expired token"},
                        headers={"WWW-Authenticate": "Bearer"})


async def on_csrf_error(request: Request, exc: CSRFValidationError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": "Invalid CSRF token"})


async def on_permission_denied(request: Request, exc: PermissionDeniedError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": exc.message})


async def on_input_error(request: Request, exc: InputValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.message, "details": exc.errors})


async def on_service_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Security backend unavailable: {exc}")
    return JSONResponse(status_code=503, content={"error": "Service temporarily unavailable"})


async def on_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    _audit_failure(request, "rate_limit", Severity.MEDIUM, details={"limit": exc.detail})
    return rate_limit_exceeded_handler(request, exc)


def create_app(
    authenticator: Optional[Authenticator] = None,
    config: Optional[Settings] = None,
    security: Optional[SecurityContext] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        authenticator: async ``(username, password) -> Principal | None``
        config: settings (defaults to the environment)
        security: pre-built security context (tests inject one with a fake clock)
    """
    config = config or settings

    app = FastAPI(
        title=config.APP_NAME,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if config.DEBUG else None,
        redoc_url=None,
        openapi_url="/openapi.json" if config.DEBUG else None,
    )
    app.state.settings = config
    app.state.authenticator = authenticator or reject_all
    app.state.security = security

    # Required by slowapi
    app.state.limiter = limiter

    app.add_exception_handler(RateLimitExceeded, on_rate_limited)
    app.add_exception_handler(TokenError, on_token_error)
    app.add_exception_handler(CSRFValidationError, on_csrf_error)
    app.add_exception_handler(PermissionDeniedError, on_permission_denied)
    app.add_exception_handler(InputValidationError, on_input_error)
    app.add_exception_handler(SecurityServiceError, on_service_error)
    app.add_exception_handler(SecurityConfigurationError, on_service_error)

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path != "/health":
            logger.info(f"📥 Request: {request.method} {request.url.path}")
        return await call_next(request)

    app.middleware("http")(SecurityHeadersMiddleware())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-CSRF-Token", "X-Session-Id"],
    )

    @app.get("/health", status_code=200)
    async def health():
        """Health check endpoint"""
        context = get_security()
        store = {"backend": type(context.store).__name__}
        if context.redis is not None:
            store.update(await context.redis.health_check())
        return {"status": "ok", "store": store}

    app.include_router(auth_router)
    return app


app = create_app()
