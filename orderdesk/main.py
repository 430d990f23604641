"""
FastAPI Application Entry Point

Order API over the OrderStore. Serves the same contract the remote order
backend consumes, so one deployment can be the remote of another.

Endpoints:
    - GET   /restaurants/{id}/orders: List orders (most recent first)
    - POST  /restaurants/{id}/orders: Submit an order
    - GET   /restaurants/{id}/order-stats: Dashboard figures
    - GET   /orders/{id}: Order detail
    - PATCH /orders/{id}/status: Apply a status transition
    - PATCH /orders/{id}/cancel: Cancel with a reason
    - GET   /health: System health check

Run:
    python -m orderdesk.main
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from orderdesk.core.config import get_settings, setup_logging
from orderdesk.core.exceptions import (
    EmptyOrder,
    FallbackStoreError,
    InvalidTransition,
    ItemUnavailable,
    MissingCancellationReason,
    OrderDeskError,
    OrderNotFound,
    RemoteRejected,
    TotalMismatch,
)
from orderdesk.models import OrderStatus
from orderdesk.schemas import (
    CancelRequest,
    ErrorResponse,
    HealthResponse,
    OrderCreateRequest,
    OrderListResponse,
    OrderResponse,
    StatusUpdateRequest,
)
from orderdesk.services.backends import FallbackOrderBackend
from orderdesk.services.cart import CartAggregator
from orderdesk.services.orders import OrderFilter, OrderStore, get_order_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   VAT: {settings.vat_rate_percent}% ({settings.currency})")
    logger.info("=" * 60)

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    store = get_order_store()
    logger.info(f"Order Backend: {store.backend.provider_name}")

    yield

    logger.info("Shutting down...")
    await store.backend.close()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order and cart lifecycle API: submission, status tracking and "
        "listing over a remote order service with a local fallback store."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(store: OrderStore = Depends(get_order_store)) -> HealthResponse:
    """Report backend health and how often the fallback store was used."""
    healthy = await store.backend.health_check()
    fallback = None
    if isinstance(store.backend, FallbackOrderBackend):
        fallback = store.backend.telemetry.to_dict()
        if fallback["total_fallbacks"] and healthy:
            status = "degraded"
        else:
            status = "operational" if healthy else "unhealthy"
    else:
        status = "operational" if healthy else "unhealthy"

    return HealthResponse(
        status=status,
        backend=store.backend.provider_name,
        fallback=fallback,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.get(
    "/restaurants/{restaurant_id}/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    restaurant_id: str,
    limit: int = Query(settings.default_page_size, ge=1, le=500),
    page: int = Query(1, ge=1),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    store: OrderStore = Depends(get_order_store),
) -> OrderListResponse:
    """Retrieve one page of a restaurant's orders, most recent first."""
    statuses = None
    if status:
        try:
            statuses = [OrderStatus(s.strip().lower()) for s in status.split(",")]
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status. Options: {[s.value for s in OrderStatus]}"
            )

    orders = await store.list(
        restaurant_id,
        OrderFilter(statuses=statuses, search=search, limit=limit, page=page),
    )
    return OrderListResponse(orders=orders, total=len(orders))


@app.post(
    "/restaurants/{restaurant_id}/orders",
    response_model=OrderResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Submit Order",
)
async def create_order(
    restaurant_id: str,
    order_data: OrderCreateRequest,
    store: OrderStore = Depends(get_order_store),
) -> OrderResponse:
    """
    Submit a new order.

    Lines are re-priced on the server; when totalAmount is sent it must
    match the computed total.
    """
    logger.info(f"Creating order for: {order_data.customer.name}")

    try:
        delivery = order_data.delivery_info()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors()[0]["msg"])

    cart = CartAggregator()
    for item in order_data.items:
        cart.add_item(
            item.menu_item(),
            quantity=item.quantity,
            customizations=item.customizations,
            notes=item.notes,
        )

    order = await store.submit_cart(
        restaurant_id,
        cart,
        order_data.customer,
        delivery,
        expected_total=order_data.total_amount,
    )
    return OrderResponse(order=order)


@app.get(
    "/restaurants/{restaurant_id}/order-stats",
    tags=["Orders"],
    summary="Order Statistics",
)
async def order_stats(
    restaurant_id: str,
    store: OrderStore = Depends(get_order_store),
) -> dict[str, Any]:
    stats = await store.stats(restaurant_id)
    return stats.to_dict()


@app.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    store: OrderStore = Depends(get_order_store),
) -> OrderResponse:
    """Get a specific order by ID."""
    return OrderResponse(order=await store.get(order_id))


@app.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    store: OrderStore = Depends(get_order_store),
) -> OrderResponse:
    """Apply one status transition (accepted, preparing, ready, delivered, cancelled)."""
    order = await store.update_status(order_id, body.status.strip().lower(), note=body.note)
    return OrderResponse(order=order)


@app.patch(
    "/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def cancel_order(
    order_id: str,
    body: CancelRequest,
    store: OrderStore = Depends(get_order_store),
) -> OrderResponse:
    order = await store.cancel(order_id, body.reason)
    return OrderResponse(order=order)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

ERROR_STATUS = {
    EmptyOrder: 400,
    MissingCancellationReason: 400,
    ItemUnavailable: 400,
    OrderNotFound: 404,
    InvalidTransition: 409,
    TotalMismatch: 422,
    FallbackStoreError: 503,
}


@app.exception_handler(OrderDeskError)
async def order_error_handler(request: Request, exc: OrderDeskError) -> JSONResponse:
    """Map business errors to user-facing responses."""
    if isinstance(exc, RemoteRejected):
        # Pass the remote service's own answer through
        status_code, error = exc.status_code, exc.error
    else:
        status_code = next(
            (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)),
            500,
        )
        error = type(exc).__name__
    if status_code >= 500:
        logger.error(f"{error} on {request.url.path}: {exc}")
    else:
        logger.info(f"{error} on {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "detail": exc.detail,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("orderdesk.main:app", host=settings.api_host, port=settings.api_port)
