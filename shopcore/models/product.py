from sqlmodel import SQLModel, Field
from datetime import datetime
from uuid import uuid4


class Product(SQLModel, table=True):
    """Catalog record. Owned by the catalog service; the checkout core only
    reads it and applies checked stock decrements."""

    __tablename__ = "products"

    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True)
    name: str
    price: float
    stock: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def in_stock(self) -> bool:
        return self.stock is not None and self.stock > 0
