from sqlmodel import SQLModel, Field
from datetime import datetime


class PaymentAttempt(SQLModel, table=True):
    """Every gateway reference issued for an order. Retries get a fresh
    reference, and a charge on any of them must still find the order."""

    __tablename__ = "payment_attempts"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    reference: str = Field(unique=True, index=True)
    amount: float

    created_at: datetime = Field(default_factory=datetime.utcnow)
