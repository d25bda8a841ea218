# shopcore/schemas/checkout_schemas.py
from pydantic import BaseModel
from typing import List

from shopcore.schemas.orders_schemas import OrderResponse
from shopcore.schemas.payment_schemas import PaymentInit


class StockValidation(BaseModel):
    is_valid: bool
    errors: List[str]


class CreateOrderRequest(BaseModel):
    payment_reference: str | None = None


class CheckoutResponse(BaseModel):
    order: OrderResponse
    payment: PaymentInit
