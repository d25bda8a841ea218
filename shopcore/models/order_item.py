from sqlmodel import SQLModel, Field , Relationship
from typing import Optional , TYPE_CHECKING

if TYPE_CHECKING:
    from shopcore.models.order import Order

class OrderItem(SQLModel, table=True):
    __tablename__ = "order_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    product_id: str = Field(foreign_key="products.id")

    product_name: str
    price_snapshot: float
    quantity: int
    line_total: float

    order: Optional["Order"] = Relationship(back_populates="items")
