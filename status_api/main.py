import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from status_api.config import settings
from status_api.db import close_pool, get_pool, init_schema
from status_api.metrics import get_metrics_bytes, get_metrics_content_type
from status_api.routes import grn, orders, purchase_orders, return_orders
from status_api.status_policy import StatusError

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.init_schema_on_startup:
        await init_schema(await get_pool())
        logger.info("Schema ready.")
    yield
    await close_pool()


app = FastAPI(title="Grocery Status Service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-CSRF-Token",
        "X-Requested-With",
        "Accept",
        "X-Actor-Role",
        "X-Actor-Id",
    ],
    max_age=86400,
)
app.include_router(orders.router)
app.include_router(purchase_orders.router)
app.include_router(grn.router)
app.include_router(return_orders.router)


@app.exception_handler(StatusError)
async def status_error_handler(request: Request, exc: StatusError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": [e.get("msg") for e in exc.errors()]},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "An unexpected error occurred"})


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint: status transitions, rejections, GRN cascades."""
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )
