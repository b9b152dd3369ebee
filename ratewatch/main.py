import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ratewatch.config import settings
from ratewatch.errors import DataAccessError, InsufficientDataError, NoDataError
from ratewatch.logging_config import configure_logging
from ratewatch.metrics import metrics_endpoint
from ratewatch.routers import patterns, rates, recommendation, retention, samples
from ratewatch.services.alerts import AlertConfig, AlertState, build_notifiers
from ratewatch.worker.retention_worker import retention_worker_loop

log = structlog.get_logger(__name__)


def init_alerting(app: FastAPI) -> None:
    """Fresh alert state, rules and notifiers on app.state."""
    app.state.alert_config = AlertConfig.from_settings(settings)
    app.state.alert_state = AlertState()
    app.state.alert_lock = asyncio.Lock()
    app.state.notifiers = build_notifiers(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure structured logging before anything else
    configure_logging()
    init_alerting(app)

    # Start the retention worker and store it on app.state for health checks
    app.state.retention_worker_task = None
    if settings.retention_worker_enabled:
        app.state.retention_worker_task = asyncio.create_task(retention_worker_loop())
    try:
        yield
    finally:
        if app.state.retention_worker_task is not None:
            app.state.retention_worker_task.cancel()


app = FastAPI(title=f"{settings.app_name} API", version="0.1.0", lifespan=lifespan)

app.include_router(samples.router)
app.include_router(rates.router)
app.include_router(patterns.router)
app.include_router(recommendation.router)
app.include_router(retention.router)

# Prometheus metrics endpoint
app.get("/metrics")(metrics_endpoint)


@app.exception_handler(NoDataError)
async def no_data_handler(request: Request, exc: NoDataError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InsufficientDataError)
async def insufficient_data_handler(request: Request, exc: InsufficientDataError):
    return JSONResponse(
        status_code=422,
        content={
            "detail": str(exc),
            "required": exc.required,
            "available": exc.available,
        },
    )


@app.exception_handler(DataAccessError)
async def data_access_handler(request: Request, exc: DataAccessError):
    log.error("data_access_failed", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "data store unavailable"})


@app.get("/health")
async def health_check(response: Response):
    """Health check: verifies the database and the retention worker.

    Returns 200 if all components are healthy, 503 if any component is unhealthy.
    A disabled worker is reported as such and does not fail the check.
    """
    from ratewatch.database import async_session_factory
    from sqlalchemy import text

    checks = {}
    overall_healthy = True

    try:
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except Exception as e:
        checks["database"] = {"status": "unhealthy", "error": str(e)}
        overall_healthy = False

    if not settings.retention_worker_enabled:
        checks["retention_worker"] = {"status": "disabled"}
    else:
        try:
            worker = app.state.retention_worker_task
            if worker is None or worker.done() or worker.cancelled():
                checks["retention_worker"] = {
                    "status": "unhealthy",
                    "error": "Worker task stopped",
                }
                overall_healthy = False
            else:
                checks["retention_worker"] = {"status": "healthy"}
        except AttributeError:
            checks["retention_worker"] = {
                "status": "unhealthy",
                "error": "Worker not initialized",
            }
            overall_healthy = False

    response.status_code = 200 if overall_healthy else 503
    return {"status": "healthy" if overall_healthy else "unhealthy", "checks": checks}
