"""
Shared fixtures and fakes for the storefront tests.

The orchestrator takes every collaborator through its constructor, so each
test builds its own isolated cart, services and presenter.
"""

import asyncio
import os
import sys
from decimal import Decimal
from typing import List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport

# Ensure project root is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from storefront.api_client import StorefrontApiClient
from storefront.cart import CartStore
from storefront.config import CheckoutSettings
from storefront.errors import PaymentGatewayError
from storefront.models import (
    AuthorizationResult,
    LessonProgress,
    LineItem,
    OrderInput,
    OrderRecord,
    PaymentIntent,
)
from storefront.orchestrator import CheckoutOrchestrator
from storefront.payment_gateway import PaymentScenario, SimulatedPaymentGateway
from storefront.presentation import PresentationModel
from storefront.routes import get_backend
from storefront.server import app
from storefront.services import (
    AlertPresenter,
    EnrollmentService,
    OrderService,
    PaymentGateway,
    PaymentIntentService,
)
from storefront.store import StorefrontBackend


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeIntentService(PaymentIntentService):
    """Mints numbered client secrets, or fails as configured."""

    def __init__(
        self,
        error: Optional[Exception] = None,
        handle: Optional[str] = None,
        delay: float = 0.0,
        amount: Optional[Decimal] = None,
    ):
        self.error = error
        self.handle = handle
        self.delay = delay
        self.amount = amount
        self.calls: List[Decimal] = []
        self.handles: List[str] = []

    async def request_payment_intent(self, amount, currency):
        self.calls.append(amount)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        n = len(self.calls)
        handle = self.handle if self.handle is not None else f"pi_{n}_secret_test{n}"
        self.handles.append(handle)
        return PaymentIntent(
            amount=self.amount if self.amount is not None else amount,
            currency=currency,
            authorization_handle=handle,
        )


class FakeOrderService(OrderService):
    """Persists orders in memory; raises queued failures first."""

    def __init__(self, failures: Optional[List[Exception]] = None, delay: float = 0.0):
        self.failures = list(failures or [])
        self.delay = delay
        self.calls: List[OrderInput] = []
        self.orders: dict = {}
        self.reference_override: Optional[str] = None

    async def submit_order(self, order_input):
        self.calls.append(order_input)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)

        reference = order_input.payment_reference
        if reference not in self.orders:
            self.orders[reference] = OrderRecord(
                order_id=f"order-{len(self.orders) + 1}",
                items=order_input.items,
                total_price=order_input.total_price,
                payment_reference=self.reference_override or reference,
                is_paid=order_input.is_paid,
                paid_at=order_input.paid_at,
            )
        return self.orders[reference]


class BlockingGateway(PaymentGateway):
    """Payment sheet that waits in present() until released."""

    def __init__(self):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.presented = 0

    async def initialize(self, authorization_handle, merchant_display_name):
        return AuthorizationResult.ok()

    async def present(self):
        self.presented += 1
        self.entered.set()
        await self.release.wait()
        return AuthorizationResult.ok()


class RaisingGateway(PaymentGateway):
    """Payment sheet whose calls raise."""

    def __init__(self, fail_on: str = "initialize"):
        self.fail_on = fail_on

    async def initialize(self, authorization_handle, merchant_display_name):
        if self.fail_on == "initialize":
            raise PaymentGatewayError("Merchant context rejected")
        return AuthorizationResult.ok()

    async def present(self):
        raise PaymentGatewayError("Payment sheet crashed")


class RecordingPresenter(AlertPresenter):
    def __init__(self):
        self.presented: List[PresentationModel] = []

    def present(self, model):
        self.presented.append(model)


class FakeEnrollmentService(EnrollmentService):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[List[LessonProgress]] = []

    async def update_lesson_progress(self, course_id, lessons):
        self.calls.append(list(lessons))
        if self.error is not None:
            raise self.error


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def make_item(product_id: str, price: str, name: Optional[str] = None) -> LineItem:
    return LineItem(
        product_id=product_id,
        name=name or f"Practice Exam {product_id}",
        subject_name="Computer Science",
        subject_code=f"CS-{product_id}",
        unit_price=Decimal(price),
        image_ref=f"https://cdn.example.com/{product_id}.png",
    )


@pytest.fixture
def settings():
    """Short timeouts and no backoff so failure paths run fast."""
    return CheckoutSettings(
        intent_timeout=1.0,
        authorization_timeout=1.0,
        order_timeout=1.0,
        order_submit_retries=2,
        order_retry_backoff=0.0,
    )


@pytest.fixture
def cart():
    return CartStore([make_item("p1", "19.99"), make_item("p2", "5.00")])


@pytest.fixture
def intents():
    return FakeIntentService()


@pytest.fixture
def orders():
    return FakeOrderService()


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway(PaymentScenario.SUCCESS)


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def make_orchestrator(cart, intents, orders, gateway, presenter, settings):
    """Build an orchestrator; keyword arguments replace the default collaborators."""

    def _make(**overrides):
        return CheckoutOrchestrator(
            cart=overrides.get("cart", cart),
            intent_service=overrides.get("intent_service", intents),
            payment_gateway=overrides.get("payment_gateway", gateway),
            order_service=overrides.get("order_service", orders),
            presenter=overrides.get("presenter", presenter),
            settings=overrides.get("settings", settings),
        )

    return _make


@pytest.fixture
def backend():
    """Fresh in-memory backend wired into the FastAPI app."""
    store = StorefrontBackend()
    app.dependency_overrides[get_backend] = lambda: store
    yield store
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_client(backend):
    """StorefrontApiClient talking to the app in-process."""
    client = StorefrontApiClient(base_url="http://test", transport=ASGITransport(app=app))
    yield client
    await client.aclose()
