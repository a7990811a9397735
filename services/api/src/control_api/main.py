"""Gateway control plane HTTP API."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import time
import uuid

from fastapi import FastAPI, Request
import structlog

from shared.logging_config import setup_logging
from shared.redis.client import RedisStreamClient

from . import routers
from .config import get_settings
from .database import engine
from .errors import install_error_handlers


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_format=settings.log_format,
        log_level=settings.log_level,
    )
    app.state.redis = RedisStreamClient(settings.redis_url)
    await app.state.redis.connect()
    yield
    await app.state.redis.close()
    await engine.dispose()


app = FastAPI(
    title="Gateway Control Plane API",
    description="Placement, admission and deployment tracking for gateway instances",
    version="0.1.0",
    lifespan=lifespan,
)
install_error_handlers(app)


CORRELATION_HEADER = "X-Correlation-ID"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Bind a correlation id for the request and log its outcome.

    Deployment creation passes the id on to the queued provisioning job, so a
    caller-supplied header links API and worker log lines.
    """
    correlation_id = request.headers.get(CORRELATION_HEADER) or f"req_{uuid.uuid4().hex[:12]}"
    structlog.contextvars.bind_contextvars(
        correlation_id=correlation_id, method=request.method, path=request.url.path
    )
    logger = structlog.get_logger()
    started = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as exc:
        logger.exception(
            "http_request_exception", error_type=type(exc).__name__, duration_ms=_elapsed_ms(started)
        )
        raise
    else:
        log = logger.error if response.status_code >= 500 else logger.info  # noqa: PLR2004
        log("http_request", status_code=response.status_code, duration_ms=_elapsed_ms(started))
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
    finally:
        structlog.contextvars.clear_contextvars()


@app.get("/")
async def root():
    return {"name": app.title, "version": app.version}


app.include_router(routers.health.router)
app.include_router(routers.servers.router, prefix="/api")
app.include_router(routers.organizations.router, prefix="/api")
app.include_router(routers.skills.router, prefix="/api")
app.include_router(routers.credentials.router, prefix="/api")
app.include_router(routers.deployments.router, prefix="/api")
app.include_router(routers.gateway_instances.router, prefix="/api")
app.include_router(routers.system.router, prefix="/api")
