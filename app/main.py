"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import get_settings
from app.domain.errors import (
    BillingError, NotFoundError, InvalidStateError, BillingValidationError, PersistenceError,
)
from app.infrastructure.db.session import check_db_connection
from app.api.v1 import subscribers, vouchers, income, reminders

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


_ERROR_STATUS = (
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (BillingValidationError, 400),
    (PersistenceError, 503),
)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches everything the routes let through, including sync handlers"""

    async def dispatch(self, request, call_next):
        try:
            response = await call_next(request)
            return response
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


async def billing_error_handler(request: Request, exc: BillingError):
    status_code = 500
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.SCHEDULER_ENABLED:
        from app.application.scheduler import start_scheduler, run_startup_checks, shutdown_scheduler
        run_startup_checks()
        start_scheduler()
        try:
            yield
        finally:
            shutdown_scheduler()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
        yield


def create_app() -> FastAPI:
    """
    Application factory - builds the billing API

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="NetBill",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(ErrorLoggingMiddleware)
    app.add_exception_handler(BillingError, billing_error_handler)

    # Routers
    app.include_router(subscribers.router)
    app.include_router(vouchers.router)
    app.include_router(income.router)
    app.include_router(reminders.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (database reachable)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
