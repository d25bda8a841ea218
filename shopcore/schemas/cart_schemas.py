from typing import List, Optional
from pydantic import BaseModel, ConfigDict
from sqlmodel import SQLModel


class CartAddRequest(SQLModel):
    product_id: str
    quantity: int = 1

class CartUpdateRequest(SQLModel):
    quantity: int


class CartLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    quantity: int
    price_snapshot: float     # price captured when the item was added
    line_total: float         # quantity * price_snapshot


class CartSnapshot(BaseModel):
    """Point-in-time priced view of a cart, shipping included."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    items: List[CartLine]
    subtotal: float           # sum of line_total
    shipping_fee: float
    total_with_shipping: float


class Pagination(BaseModel):
    total_items: int
    total_pages: int
    current_page: int
    limit: int


class PagedCart(BaseModel):
    user_id: str
    items: List[CartLine]
    pagination: Pagination
    subtotal: float
    shipping_fee: float
    total_with_shipping: float
