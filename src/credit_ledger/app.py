"""FastAPI application factory for Credit-Ledger."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from credit_ledger.common.config import get_settings
from credit_ledger.common.exceptions import LedgerError
from credit_ledger.common.logging import get_logger, setup_logging
from credit_ledger.common.messages import get_message
from credit_ledger.common.schemas import HealthResponse

logger = get_logger("app")

# Codes whose exception message is specific and safe to echo to the caller.
_ECHO_REASON = {"VALIDATION_ERROR", "NOT_FOUND"}


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from credit_ledger.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        yield
        # Shutdown
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error mapping ──

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                exc_info=exc,
                extra={"context": {"path": request.url.path, "code": exc.code}},
            )
        body = {
            "error": get_message(exc.code, settings.locale, exc.message),
            "code": exc.code,
            **exc.extra,
        }
        if exc.code in _ECHO_REASON and exc.message:
            body["reason"] = exc.message
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        body = {
            "error": get_message("VALIDATION_ERROR", settings.locale),
            "code": "VALIDATION_ERROR",
        }
        if settings.environment == "development":
            body["detail"] = [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                for err in exc.errors()
            ]
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error",
            exc_info=exc,
            extra={"context": {"path": request.url.path}},
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": get_message("INTERNAL_ERROR", settings.locale),
                "code": "INTERNAL_ERROR",
            },
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from credit_ledger.credits.router import router as credits_router
    from credit_ledger.codes.router import router as codes_router
    from credit_ledger.access.router import router as access_router

    prefix = settings.api_prefix
    app.include_router(credits_router, prefix=prefix, tags=["credits"])
    app.include_router(codes_router, prefix=prefix, tags=["codes"])
    app.include_router(access_router, prefix=prefix, tags=["access"])

    return app
