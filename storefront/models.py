# Copyright 2026 Storefront Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Checkout Data Model

Records exchanged between the checkout orchestrator and its collaborators:

- LineItem / CartSnapshot: the frozen view of the cart taken at checkout start
- PaymentIntent / AuthorizationResult: payment gateway handles and results
- OrderInput / OrderRecord: what is submitted to and returned by the order service
- CheckoutAttempt: the unit of work owned by the orchestrator
- CompletedOutcome / FailedOutcome: the single value returned to the UI layer

Amounts are Decimal values rounded to 2 places.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .constants import Constants

constants = Constants()

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Round an amount to 2 decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutState(str, Enum):
    """States of a checkout attempt."""
    IDLE = "Idle"
    INTENT_REQUESTED = "IntentRequested"
    INTENT_ACQUIRED = "IntentAcquired"
    AUTHORIZATION_PENDING = "AuthorizationPending"
    AUTHORIZATION_CONFIRMED = "AuthorizationConfirmed"
    ORDER_SUBMITTING = "OrderSubmitting"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CheckoutState.COMPLETED, CheckoutState.FAILED)


class ErrorKind(str, Enum):
    """Failure classification, one per checkout step."""
    EMPTY_CART = "EmptyCart"
    INTENT_UNAVAILABLE = "IntentUnavailable"
    PAYMENT_INIT_ERROR = "PaymentInitError"
    PAYMENT_DECLINED = "PaymentDeclined"
    ORDER_COMMIT_FAILED = "OrderCommitFailed"

    @property
    def payment_captured(self) -> bool:
        """True when the user has been charged but no order exists."""
        return self is ErrorKind.ORDER_COMMIT_FAILED


class LineItem(BaseModel):
    """A priced product in the cart. The cart holds one unit per line item."""
    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    subject_name: Optional[str] = None
    subject_code: Optional[str] = None
    unit_price: Decimal = Field(..., ge=0)
    image_ref: Optional[str] = None


class CartSnapshot(BaseModel):
    """Immutable view of the cart taken when checkout begins."""
    model_config = ConfigDict(frozen=True)

    items: Tuple[LineItem, ...] = ()

    @computed_field
    @property
    def total(self) -> Decimal:
        return to_money(sum((item.unit_price for item in self.items), Decimal("0")))

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    def __len__(self) -> int:
        return len(self.items)


class PaymentIntent(BaseModel):
    """Server-side payment intent minted for a single checkout attempt."""
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str = constants.DEFAULT_CURRENCY
    authorization_handle: str = Field(..., description="Client secret used by the payment sheet")
    attempt_id: Optional[str] = None


class AuthorizationResult(BaseModel):
    """Result of a payment sheet call (initialize or present)."""
    success: bool
    message: Optional[str] = None

    @classmethod
    def ok(cls) -> "AuthorizationResult":
        return cls(success=True)

    @classmethod
    def failed(cls, message: str) -> "AuthorizationResult":
        return cls(success=False, message=message)


class OrderLine(BaseModel):
    """An order line; mirrors a LineItem with a fixed quantity of one."""
    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    subject_name: Optional[str] = None
    subject_code: Optional[str] = None
    price: Decimal
    image_ref: Optional[str] = None
    quantity: int = 1

    @classmethod
    def from_line_item(cls, item: LineItem) -> "OrderLine":
        return cls(
            product_id=item.product_id,
            name=item.name,
            subject_name=item.subject_name,
            subject_code=item.subject_code,
            price=item.unit_price,
            image_ref=item.image_ref,
        )


class OrderInput(BaseModel):
    """Order submitted to the order service after payment is authorized."""
    model_config = ConfigDict(frozen=True)

    items: Tuple[OrderLine, ...]
    total_price: Decimal
    payment_reference: str
    payment_method: str = constants.PAYMENT_METHOD
    is_paid: bool = True
    paid_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_snapshot(cls, snapshot: CartSnapshot, payment_reference: str) -> "OrderInput":
        return cls(
            items=tuple(OrderLine.from_line_item(item) for item in snapshot.items),
            total_price=snapshot.total,
            payment_reference=payment_reference,
        )


class OrderRecord(BaseModel):
    """Order persisted by the order service."""
    model_config = ConfigDict(frozen=True)

    order_id: str
    items: Tuple[OrderLine, ...]
    total_price: Decimal
    payment_reference: str
    is_paid: bool = True
    paid_at: Optional[datetime] = None


class CheckoutAttempt(BaseModel):
    """A single run through the checkout state machine."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    cart_snapshot: CartSnapshot
    payment_intent: Optional[PaymentIntent] = None
    payment_outcome: Optional[AuthorizationResult] = None
    order_record: Optional[OrderRecord] = None
    state: CheckoutState = CheckoutState.IDLE
    failure: Optional[ErrorKind] = None
    failure_message: Optional[str] = None
    history: List[CheckoutState] = Field(default_factory=lambda: [CheckoutState.IDLE])
    started_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class CompletedOutcome(BaseModel):
    """Checkout finished and the order is persisted."""
    kind: Literal["Completed"] = "Completed"
    attempt_id: Optional[str] = None
    order: OrderRecord


class FailedOutcome(BaseModel):
    """
    Checkout stopped at one of its steps.

    For OrderCommitFailed the payment has already been captured, so the
    payment reference and the order input are kept to allow resubmitting
    the same order without charging the user again.
    """
    kind: Literal["Failed"] = "Failed"
    attempt_id: Optional[str] = None
    reason: ErrorKind
    message: Optional[str] = None
    payment_reference: Optional[str] = None
    order_input: Optional[OrderInput] = None

    @property
    def retryable_from_scratch(self) -> bool:
        return not self.reason.payment_captured

    @property
    def can_retry_order(self) -> bool:
        return (
            self.reason is ErrorKind.ORDER_COMMIT_FAILED
            and bool(self.payment_reference)
            and self.order_input is not None
        )


Outcome = Annotated[Union[CompletedOutcome, FailedOutcome], Field(discriminator="kind")]


class LessonProgress(BaseModel):
    """Playback progress for one lesson of an enrolled course."""
    lesson_id: str
    watched_duration: int = Field(0, ge=0, description="Playback position in milliseconds")
    completed: bool = False
