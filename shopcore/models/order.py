from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from datetime import datetime

from shopcore.constants.order_status import OrderStatus
from shopcore.models.order_item import OrderItem


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    buyer_id: str = Field(index=True)

    # frozen at creation, never recomputed
    subtotal: float
    shipping_fee: float
    total_price: float

    reference: str = Field(unique=True, index=True)
    payment_reference: Optional[str] = Field(default=None, unique=True, index=True)

    is_paid: bool = Field(default=False)
    paid_at: Optional[datetime] = None

    status: str = Field(default=OrderStatus.pending.value, index=True)
    estimated_delivery_date: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["OrderItem"] = Relationship(back_populates="order")
