"""Pytest fixtures for shopcore tests."""

import hashlib
import hmac
import json
from collections import deque

import pytest
import requests
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from shopcore import models  # noqa: F401  registers every table
from shopcore.models.product import Product
from shopcore.models.user import User
from shopcore.services.cart_service import CartService
from shopcore.services.checkout_service import CheckoutService
from shopcore.services.payment_service import PaymentService
from shopcore.services.paystack_client import PaystackClient
from shopcore.utils.cache_helpers import CartSnapshotCache
from shopcore.utils.identity import SqlUserDirectory

SECRET = "sk_test_secret"
SHIPPING_FEE = 750.0


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class FakeHttp:
    """Stands in for requests.Session: replays queued responses or raises
    queued exceptions, and records every call."""

    def __init__(self):
        self.queue = deque()
        self.calls = []

    def add(self, item):
        self.queue.append(item)
        return self

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.queue:
            raise AssertionError(f"Unexpected gateway call: {method} {url}")
        item = self.queue.popleft()
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(method, url, **kwargs)
        return item


class RecordingNotifier:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def notify(self, user, summary, kind):
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append((user.email, summary.order_id, kind))

    def kinds(self):
        return [kind for _, _, kind in self.sent]


def sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def init_response(reference, url="https://checkout.paystack.com/abc"):
    return FakeResponse(
        200,
        {
            "status": True,
            "message": "Authorization URL created",
            "data": {"authorization_url": url, "access_code": "abc", "reference": reference},
        },
    )


def echo_init(method, url, json=None, **kwargs):
    """Gateway stand-in that accepts whatever reference it is given."""
    return init_response(json["reference"])


def verify_response(reference, status="success", amount=None, metadata=None, email="ada@example.com"):
    data = {
        "reference": reference,
        "status": status,
        "customer": {"email": email},
    }
    if amount is not None:
        data["amount"] = amount
    if metadata is not None:
        data["metadata"] = metadata
    return FakeResponse(200, {"status": True, "message": "Verification successful", "data": data})


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return lambda: Session(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def products(session):
    """Seed the catalog: a book at 5000, a pen at 250 and a lamp at 10000."""
    seeded = {
        "book": Product(id="p-book", name="Python Book", price=5000.0, stock=10),
        "pen": Product(id="p-pen", name="Fountain Pen", price=250.0, stock=3),
        "lamp": Product(id="p-lamp", name="Desk Lamp", price=10000.0, stock=2),
    }
    for product in seeded.values():
        session.add(product)
    session.commit()
    return seeded


@pytest.fixture
def users(session):
    seeded = {
        "u123": User(id="u123", first_name="Ada", email="ada@example.com"),
        "user-with-dashes": User(id="user-with-dashes", first_name="Bo", email="bo@example.com"),
    }
    for user in seeded.values():
        session.add(user)
    session.commit()
    return seeded


@pytest.fixture
def cache():
    return CartSnapshotCache(ttl=30, maxsize=100)


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def paystack_client(http, sleeps):
    return PaystackClient(
        secret_key=SECRET,
        base_url="https://api.paystack.test",
        timeout=5,
        max_retries=2,
        backoff_base=0.5,
        http=http,
        sleep=sleeps.append,
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def checkout_service(paystack_client, session_factory, cache, notifier):
    """Orchestrator wired to a payment adapter whose callbacks point back at it."""
    checkout = None

    def confirmed(session, verification):
        return checkout.mark_order_as_paid(session, verification.reference, verification)

    def failed(session, verification):
        return checkout.mark_order_as_failed(session, verification.reference, verification)

    payments = PaymentService(
        paystack_client,
        session_factory,
        cache,
        currency="NGN",
        callback_url="http://localhost/callback",
        min_amount=100.0,
        shipping_fee=SHIPPING_FEE,
        on_payment_confirmed=confirmed,
        on_payment_failed=failed,
    )
    checkout = CheckoutService(
        payment_service=payments,
        notifier=notifier,
        directory=SqlUserDirectory(),
        cache=cache,
        shipping_fee=SHIPPING_FEE,
        delivery_days=5,
    )
    return checkout


@pytest.fixture
def payment_service(checkout_service):
    return checkout_service.payment_service


@pytest.fixture
def fill_cart(session, cache):
    """Add ``(product_id, quantity)`` pairs to a user's cart."""

    def fill(user_id, *lines):
        cart = CartService(session, cache=cache, shipping_fee=SHIPPING_FEE)
        for product_id, quantity in lines:
            cart.add(user_id, product_id, quantity)
        return cart

    return fill
