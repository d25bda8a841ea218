"""Process-wide service wiring.

One cart cache, one gateway client and one orchestrator per process. The
payment adapter reaches the orchestrator only through the callbacks below.
"""

from functools import lru_cache

from sqlmodel import Session

from shopcore.config import settings
from shopcore.database import session_factory
from shopcore.notifications import LoggingNotifier
from shopcore.schemas.payment_schemas import PaymentVerification
from shopcore.services.checkout_service import CheckoutService
from shopcore.services.payment_service import PaymentService
from shopcore.services.paystack_client import PaystackClient
from shopcore.utils.cache_helpers import CartSnapshotCache
from shopcore.utils.identity import SqlUserDirectory


@lru_cache(maxsize=1)
def get_cart_cache() -> CartSnapshotCache:
    return CartSnapshotCache(ttl=settings.cart_cache_ttl, maxsize=settings.cart_cache_maxsize)


def _payment_confirmed(session: Session, verification: PaymentVerification):
    return get_checkout_service().mark_order_as_paid(session, verification.reference, verification)


def _payment_failed(session: Session, verification: PaymentVerification):
    return get_checkout_service().mark_order_as_failed(session, verification.reference, verification)


@lru_cache(maxsize=1)
def get_payment_service() -> PaymentService:
    client = PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.gateway_timeout,
        max_retries=settings.gateway_max_retries,
        backoff_base=settings.gateway_backoff_base,
    )
    return PaymentService(
        client,
        session_factory,
        get_cart_cache(),
        currency=settings.payment_currency,
        callback_url=settings.payment_callback_url,
        min_amount=settings.payment_min_amount,
        shipping_fee=settings.shipping_fee,
        on_payment_confirmed=_payment_confirmed,
        on_payment_failed=_payment_failed,
    )


@lru_cache(maxsize=1)
def get_checkout_service() -> CheckoutService:
    return CheckoutService(
        payment_service=get_payment_service(),
        notifier=LoggingNotifier(),
        directory=SqlUserDirectory(),
        cache=get_cart_cache(),
        shipping_fee=settings.shipping_fee,
        delivery_days=settings.delivery_days,
    )
