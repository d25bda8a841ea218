import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shopcore.config import settings
from shopcore.database import create_db_and_tables
from shopcore.errors import ShopcoreError
from shopcore.routes import (
    admin_orders,
    cart,
    checkout,
    health,
    payments,
    user_orders,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.env == "local":
        create_db_and_tables()
    yield

app = FastAPI(title="Shopcore Checkout API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ShopcoreError)
async def shopcore_error_handler(request: Request, exc: ShopcoreError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "errors": exc.details},
    )


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(cart.router, prefix="/cart", tags=["Cart"])
app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])
app.include_router(user_orders.router, prefix="/orders", tags=["Orders"])
app.include_router(admin_orders.router, prefix="/admin/orders", tags=["Admin Orders"])


@app.get("/")
def root():
    return {
        "cart": [
            "/cart", "/cart/add", "/cart/update/{product_id}",
            "/cart/remove/{product_id}", "/cart/clear"
        ],
        "checkout": [
            "/checkout/orders", "/checkout/start"
        ],
        "payments": [
            "/payments/initialize", "/payments/verify", "/payments/webhook"
        ],
        "orders": [
            "/orders", "/orders/{order_id}"
        ],
        "admin_orders": [
            "/admin/orders", "/admin/orders/stats", "/admin/orders/{order_id}",
            "/admin/orders/{order_id}/status", "/admin/orders/{order_id}/logs",
            "/admin/orders/{order_id}/assign"
        ]
    }
