"""FastAPI application entrypoint for the Nightbot counter service."""

from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response

from app.channels.routes import router as channels_router
from app.config import get_settings
from app.deaths.routes import router as deaths_router
from app.lib.logger import configure_logging, get_logger
from app.lib.metrics import METRICS
from app.lib.rate_limiter import RateLimiter
from app.store import CounterStoreError, PersistenceError, build_counter_store
from app.uninstall.routes import router as uninstall_router

settings = get_settings()

configure_logging(settings.log_level)
logger = get_logger(__name__)

app = FastAPI(title="Nightbot Counters", version="1.0.0")

app.state.counter_store = build_counter_store(settings)
app.state.metrics = METRICS
app.state.rate_limiter = RateLimiter()
app.state.rate_limit_per_minute = settings.request_rate_limit_per_minute

app.include_router(uninstall_router, prefix="/api/uninstall", tags=["uninstall"])
app.include_router(deaths_router, prefix="/api", tags=["deaths"])
app.include_router(channels_router, prefix="/api/channels", tags=["channels"])


@app.exception_handler(CounterStoreError)
async def counter_store_error_handler(request: Request, exc: CounterStoreError) -> JSONResponse:
    """Render store failures raised by JSON endpoints as error envelopes."""

    if isinstance(exc, PersistenceError):
        logger.error("request_failed_persistence", extra={"path": request.url.path})
        return JSONResponse({"ok": False, "detail": "Failed to persist counters"}, status_code=exc.status_code)
    return JSONResponse({"ok": False, "detail": exc.message}, status_code=exc.status_code)


@app.get("/health", tags=["system"], summary="Health check")
async def health_check() -> JSONResponse:
    """Return liveness response for uptime monitoring."""
    payload = {"ok": True, "data": {"status": "healthy"}}
    return JSONResponse(content=payload)


@app.get("/metrics", tags=["system"], summary="Metrics endpoint")
async def metrics_endpoint() -> JSONResponse:
    snapshot = METRICS.snapshot()
    return JSONResponse({"ok": True, "data": snapshot})


@app.get("/favicon.ico", include_in_schema=False)
async def favicon() -> Response:
    """Return empty response so browsers hitting the API do not log 404s."""

    return Response(status_code=204)
