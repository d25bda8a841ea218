import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlmodel import Session

from shopcore.errors import ConflictError
from shopcore.models.product import Product
from shopcore.schemas.cart_schemas import CartLine
from shopcore.schemas.checkout_schemas import StockValidation

logger = logging.getLogger(__name__)


def get_product(session: Session, product_id: str) -> Optional[Product]:
    return session.get(Product, product_id)


def validate_stock(session: Session, lines: Iterable[CartLine]) -> StockValidation:
    """Check every line against available stock, collecting all violations."""
    errors: List[str] = []

    for line in lines:
        product = get_product(session, line.product_id)
        if not product:
            errors.append(f"{line.product_name} is no longer available")
            continue

        available = product.stock or 0
        if line.quantity > available:
            errors.append(
                f"Insufficient stock for {product.name}. "
                f"Available: {available}, Requested: {line.quantity}"
            )

    return StockValidation(is_valid=not errors, errors=errors)


def decrement_stock(session: Session, product_id: str, quantity: int) -> None:
    """
    Checked decrement. The stock guard is part of the UPDATE itself, so a
    concurrent checkout that already took the units makes this match no row.
    """

    result = session.execute(
        update(Product)
        .where(Product.id == product_id)
        .where(Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        logger.warning(f"Stock decrement conflict for product {product_id} (qty {quantity})")
        raise ConflictError(
            "Insufficient stock",
            details=[f"Product {product_id} no longer has {quantity} unit(s) available"],
        )


def decrement_items(session: Session, lines: Iterable[CartLine]) -> None:
    """Decrement every line. Must run inside the order-creation transaction."""
    for line in lines:
        decrement_stock(session, line.product_id, line.quantity)
        logger.info(f"Reserved {line.quantity} x {line.product_id}")
