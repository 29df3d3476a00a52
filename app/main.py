from contextlib import asynccontextmanager
from typing import Annotated

import structlog
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.config import get_settings
from app.shared.core.exceptions import CloudWiseException
from app.shared.core.health import HealthService
from app.shared.core.logging import setup_logging
from app.shared.core.middleware import RequestIDMiddleware
from app.shared.core.notifications import NotificationDispatcher
from app.shared.db.session import get_db
from app.modules.notifications.domain.events import event_bus
from app.modules.reporting.api.v1.costs import router as costs_router
from app.modules.reporting.api.v1.accounts import router as accounts_router
from app.modules.optimization.api.v1.resources import router as resources_router
from app.modules.optimization.api.v1.recommendations import router as recommendations_router
from app.modules.notifications.api.v1.alerts import router as alerts_router

setup_logging()

logger = structlog.get_logger()


# Runs before the app starts serving (setup) and after it stops (teardown)
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("app_starting", app=settings.APP_NAME, environment=settings.ENVIRONMENT)

    NotificationDispatcher.register(event_bus)
    event_bus.start()
    app.state.event_bus = event_bus

    yield

    await event_bus.stop()
    logger.info("app_stopped", app=settings.APP_NAME)


settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)

# Billing API client used by account connect and sync; deployments install one here
app.state.sync_client = None

Instrumentator().instrument(app).expose(app)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CloudWiseException)
async def cloudwise_exception_handler(request: Request, exc: CloudWiseException):
    """Render domain errors as {error, message, details}."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_failed",
        method=request.method,
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.code,
        error=exc.message,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message, "details": exc.details},
        headers=headers,
    )


app.include_router(costs_router, prefix="/api/v1/costs")
app.include_router(accounts_router, prefix="/api/v1/accounts")
app.include_router(resources_router, prefix="/api/v1/resources")
app.include_router(recommendations_router, prefix="/api/v1/recommendations")
app.include_router(alerts_router, prefix="/api/v1/alerts")


@app.get("/health")
async def health_check(db: Annotated[AsyncSession, Depends(get_db)]):
    health = await HealthService(db).check_all()
    return {
        **health,
        "app": settings.APP_NAME,
        "version": settings.VERSION,
    }
