from sqlmodel import SQLModel, Field
from datetime import datetime


class CartItem(SQLModel, table=True):
    __tablename__ = "cart_items"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    product_id: str = Field(foreign_key="products.id")
    quantity: int = 1

    # price at the time the product was added, not the live catalog price
    price_snapshot: float
    line_total: float

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
