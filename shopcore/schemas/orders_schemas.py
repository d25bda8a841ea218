from pydantic import BaseModel, ConfigDict, field_validator
from typing import Dict, List, Optional
from datetime import datetime

from shopcore.constants.order_status import ADMIN_STATUSES, OrderStatus


class UpdateStatusRequest(BaseModel):
    status: OrderStatus

    @field_validator("status")
    @classmethod
    def only_admin_statuses(cls, value: OrderStatus) -> OrderStatus:
        # paid and failed come from the gateway alone
        if value not in ADMIN_STATUSES:
            allowed = ", ".join(s.value for s in ADMIN_STATUSES)
            raise ValueError(f"Admins may only set: {allowed}")
        return value


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    product_name: str
    price_snapshot: float
    quantity: int
    line_total: float


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    buyer_id: str
    reference: str
    payment_reference: Optional[str]
    status: str
    is_paid: bool
    paid_at: Optional[datetime]
    subtotal: float
    shipping_fee: float
    total_price: float
    estimated_delivery_date: Optional[datetime]
    created_at: datetime
    items: List[OrderItemResponse]


class OrderLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    performed_by: str
    actor_type: str
    meta: Optional[dict]
    created_at: datetime


class OrderStats(BaseModel):
    total_orders: int
    by_status: Dict[str, int]
    total_revenue: float
