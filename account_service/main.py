"""FastAPI application wiring for the account service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import install_error_handlers
from .api.routes import router as v1_router
from .config import get_settings
from .domain.service import AccountService
from .errors import StorageError
from .logging_config import configure_logging
from .repository import AccountRepository
from .security.passwords import PasswordHasher
from .security.tokens import TokenManager

settings = get_settings().validate()
configure_logging(settings)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    tokens = TokenManager.from_settings(settings)
    repository = AccountRepository(pool)
    app.state.pool = pool
    app.state.repository = repository
    app.state.token_manager = tokens
    app.state.account_service = AccountService(
        repository,
        PasswordHasher(rounds=settings.bcrypt_rounds),
        tokens,
    )
    logger.info("%s %s started [%s]", settings.app_name, settings.version, settings.environment)
    try:
        yield
    finally:
        pool.close()
        pool.wait_close()
        logger.info("%s shutdown completed", settings.app_name)


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allow_origins),
    allow_credentials="*" not in settings.cors_allow_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "Content-Type", "Accept", "Authorization", "X-Requested-With"],
    max_age=600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.error(
            "%s %s 500",
            request.method,
            request.url.path,
            extra={"latency_ms": round((time.perf_counter() - start) * 1000, 2)},
        )
        raise
    elapsed = time.perf_counter() - start
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    logger.info(
        "%s %s %s",
        request.method,
        request.url.path,
        response.status_code,
        extra={"latency_ms": round(elapsed * 1000, 2)},
    )
    return response


@app.get("/healthz", tags=["health"])
def healthz(request: Request) -> JSONResponse:
    """Report readiness, including whether the database answers."""
    body = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
    }
    try:
        request.app.state.repository.ping()
    except StorageError:
        logger.warning("health check failed: database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": "database connection failed"},
        )
    return JSONResponse(content=body)


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
install_error_handlers(app)


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_config=None)


if __name__ == "__main__":
    run()
