import logging
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from shopcore.config import settings
from shopcore.errors import InvalidRequestError, NotFoundError
from shopcore.models.cart import CartItem
from shopcore.models.product import Product
from shopcore.schemas.cart_schemas import CartLine, CartSnapshot, PagedCart, Pagination
from shopcore.utils.cache_helpers import CartSnapshotCache
from shopcore.utils.pagination import normalize_page, page_meta

logger = logging.getLogger(__name__)


class CartService:
    """Cart aggregation and mutation for one database session.

    Prices come from the snapshot taken when an item was added, so a cart
    total never depends on the live catalog price.
    """

    def __init__(
        self,
        session: Session,
        cache: Optional[CartSnapshotCache] = None,
        shipping_fee: Optional[float] = None,
    ):
        self.session = session
        self.cache = cache
        self.shipping_fee = settings.shipping_fee if shipping_fee is None else shipping_fee

    # -------------------------
    # READS
    # -------------------------

    def _cart_rows(self, user_id: str):
        return self.session.exec(
            select(CartItem, Product)
            .join(Product, CartItem.product_id == Product.id, isouter=True)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.id)
        ).all()

    def _priced_lines(self, user_id: str) -> List[CartLine]:
        lines = []

        for item, product in self._cart_rows(user_id):
            # never hand out a line that points at nothing
            if product is None:
                logger.warning(f"Dropping cart line for missing product {item.product_id}")
                continue
            if item.quantity <= 0 or item.price_snapshot <= 0:
                continue

            lines.append(
                CartLine(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=item.quantity,
                    price_snapshot=item.price_snapshot,
                    line_total=item.price_snapshot * item.quantity,
                )
            )

        return lines

    def get_priced_cart(self, user_id: str) -> Optional[CartSnapshot]:
        lines = self._priced_lines(user_id)
        if not lines:
            return None

        subtotal = sum(line.line_total for line in lines)
        return CartSnapshot(
            user_id=user_id,
            items=lines,
            subtotal=subtotal,
            shipping_fee=self.shipping_fee,
            total_with_shipping=subtotal + self.shipping_fee,
        )

    def get_paged_cart(self, user_id: str, page: int = 1, limit: int = 10) -> PagedCart:
        page, limit = normalize_page(page, limit)
        lines = self._priced_lines(user_id)

        # totals always cover the whole cart, not just the page
        subtotal = sum(line.line_total for line in lines)
        start = (page - 1) * limit

        return PagedCart(
            user_id=user_id,
            items=lines[start:start + limit],
            pagination=Pagination(**page_meta(len(lines), page, limit)),
            subtotal=subtotal,
            shipping_fee=self.shipping_fee,
            total_with_shipping=subtotal + self.shipping_fee,
        )

    # -------------------------
    # MUTATIONS
    # -------------------------

    def _find_item(self, user_id: str, product_id: str) -> Optional[CartItem]:
        return self.session.exec(
            select(CartItem).where(
                CartItem.user_id == user_id,
                CartItem.product_id == product_id,
            )
        ).first()

    def add(self, user_id: str, product_id: str, quantity: int = 1) -> CartItem:
        if quantity <= 0:
            raise InvalidRequestError("Quantity must be at least 1")

        product = self.session.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")

        existing_item = self._find_item(user_id, product_id)

        if existing_item:
            existing_item.quantity += quantity
            existing_item.line_total = existing_item.quantity * existing_item.price_snapshot
            existing_item.updated_at = datetime.utcnow()
            item = existing_item
        else:
            item = CartItem(
                user_id=user_id,
                product_id=product.id,
                quantity=quantity,
                price_snapshot=product.price,
                line_total=quantity * product.price,
            )

        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        self._invalidate(user_id)
        return item

    def update_quantity(self, user_id: str, product_id: str, quantity: int) -> Optional[CartItem]:
        if quantity <= 0:
            self.remove(user_id, product_id)
            return None

        item = self._find_item(user_id, product_id)
        if not item:
            raise NotFoundError("Item not found in cart")

        item.quantity = quantity
        item.line_total = item.price_snapshot * quantity
        item.updated_at = datetime.utcnow()

        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        self._invalidate(user_id)
        return item

    def remove(self, user_id: str, product_id: str) -> None:
        item = self._find_item(user_id, product_id)
        if not item:
            raise NotFoundError("Item not found in cart")

        self.session.delete(item)
        self.session.commit()
        self._invalidate(user_id)

    def clear(self, user_id: str, commit: bool = True) -> int:
        """Empty the cart. With ``commit=False`` the deletes join the caller's
        transaction."""
        items = self.session.exec(
            select(CartItem).where(CartItem.user_id == user_id)
        ).all()

        for item in items:
            self.session.delete(item)

        if commit:
            self.session.commit()
        self._invalidate(user_id)
        return len(items)

    def _invalidate(self, user_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(user_id)
