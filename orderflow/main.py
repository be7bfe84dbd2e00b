import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from orderflow.config import settings
from orderflow.db import (
    PostgresNotificationStore,
    PostgresOrderStore,
    PostgresRestaurantCatalog,
    PostgresUserDirectory,
    close_pool,
    get_pool,
    init_schema,
)
from orderflow.errors import OrderWorkflowError, StoreError
from orderflow.metrics import get_metrics_bytes, get_metrics_content_type
from orderflow.notifications import NotificationDispatcher, NotificationService
from orderflow.redis_client import RedisConnectionRegistry, close_redis, get_redis
from orderflow.routes import notifications, orders
from orderflow.workflow import OrderWorkflow

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    pool = await get_pool()
    await init_schema(pool)
    r = await get_redis()

    notification_store = PostgresNotificationStore(pool)
    dispatcher = NotificationDispatcher(notification_store, RedisConnectionRegistry(r))
    app.state.users = PostgresUserDirectory(pool)
    app.state.notification_service = NotificationService(notification_store)
    app.state.workflow = OrderWorkflow(
        PostgresOrderStore(pool),
        app.state.users,
        PostgresRestaurantCatalog(pool),
        dispatcher,
    )
    logger.info("Schema ready. Order workflow started.")
    yield
    await close_redis()
    await close_pool()
    logger.info("Order workflow stopped.")


app = FastAPI(title="Order Workflow", lifespan=lifespan)
app.include_router(orders.router)
app.include_router(notifications.router)


@app.exception_handler(OrderWorkflowError)
async def workflow_error_handler(request: Request, exc: OrderWorkflowError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "error": type(exc).__name__, "message": exc.message},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"status": "error", "error": "InternalError", "message": "Internal server error"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )
