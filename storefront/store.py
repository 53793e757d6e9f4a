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
In-memory stores behind the reference storefront backend.

- PaymentIntentRegistry: mints payment intents and their client secrets
- OrderStore: persists orders, idempotent on the payment reference
- EnrollmentStore: course enrollments and lesson progress
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from .models import to_money
from .schemas import (
    EnrollmentPayload,
    EnrollmentStatus,
    EnrollmentUpdatePayload,
    OrderCreatePayload,
    OrderPayload,
    PaymentIntentPayload,
)

logger = logging.getLogger(__name__)


class BackendUnavailableError(Exception):
    """The store refuses the request as if the service were down."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PaymentIntentRegistry:
    """Mints payment intents; each client secret is unique."""

    def __init__(self):
        self._intents: Dict[str, PaymentIntentPayload] = {}

    def create(self, amount: Decimal, currency: str) -> PaymentIntentPayload:
        amount = to_money(amount)
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        intent_id = f"pi_{uuid4().hex[:24]}"
        intent = PaymentIntentPayload(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:24]}",
            amount=amount,
            currency=currency.lower(),
        )
        self._intents[intent.client_secret] = intent
        logger.info(f"Payment intent {intent_id} created for {amount} {intent.currency}")
        return intent

    def get(self, client_secret: str) -> Optional[PaymentIntentPayload]:
        return self._intents.get(client_secret)


class OrderStore:
    """
    Order persistence.

    Orders are keyed by payment reference: placing an order for a reference
    that already has one returns the existing order instead of creating a
    second one.
    """

    def __init__(self, intents: PaymentIntentRegistry):
        self.intents = intents
        self.fail_next_orders = 0
        self._orders: Dict[str, OrderPayload] = {}
        self._by_reference: Dict[str, str] = {}

    def place_order(self, request: OrderCreatePayload) -> Tuple[OrderPayload, bool]:
        """
        Persist an order.

        Returns:
            Tuple of (order, created); created is False for a repeated payment reference

        Raises:
            BackendUnavailableError: While failures are being injected
            ValueError: If the order does not match its payment intent
        """
        if self.fail_next_orders > 0:
            self.fail_next_orders -= 1
            raise BackendUnavailableError("Order service is temporarily unavailable")

        reference = request.payment_result.client_secret
        existing_id = self._by_reference.get(reference)
        if existing_id is not None:
            logger.info(f"Order {existing_id} already exists for payment reference, returning it")
            return self._orders[existing_id], False

        intent = self.intents.get(reference)
        if intent is None:
            raise ValueError("Unknown payment reference")

        total = to_money(request.total_price)
        items_total = to_money(sum((item.price for item in request.order_items), Decimal("0")))
        if total != items_total:
            raise ValueError(f"Total price {total} does not match order items {items_total}")
        if total != to_money(intent.amount):
            raise ValueError(f"Total price {total} does not match the authorized amount {intent.amount}")

        order = OrderPayload(
            id=uuid4().hex[:24],
            created_at=_now(),
            order_items=request.order_items,
            total_price=total,
            payment_method=request.payment_method,
            is_paid=request.is_paid,
            paid_at=request.paid_at or _now(),
            payment_result=request.payment_result,
        )
        self._orders[order.id] = order
        self._by_reference[reference] = order.id
        logger.info(f"Order {order.id} placed for {total}")
        return order, True

    def get(self, order_id: str) -> Optional[OrderPayload]:
        return self._orders.get(order_id)

    def list_orders(self) -> List[OrderPayload]:
        return sorted(self._orders.values(), key=lambda order: order.created_at, reverse=True)


class EnrollmentStore:
    """Course enrollments of the current user."""

    def __init__(self):
        self._enrollments: Dict[str, EnrollmentPayload] = {}

    def enroll(self, course_id: str) -> EnrollmentPayload:
        if course_id in self._enrollments:
            raise ValueError("You are already enrolled in this course.")
        enrollment = EnrollmentPayload(course=course_id, enrolled_at=_now())
        self._enrollments[course_id] = enrollment
        return enrollment

    def get(self, course_id: str) -> Optional[EnrollmentPayload]:
        return self._enrollments.get(course_id)

    def update(self, course_id: str, update: EnrollmentUpdatePayload) -> Optional[EnrollmentPayload]:
        """Apply the fields present in the update; returns None when not enrolled."""
        enrollment = self._enrollments.get(course_id)
        if enrollment is None:
            return None

        changes = {}
        if update.progress is not None:
            changes["progress"] = update.progress
        if update.status is not None:
            changes["status"] = update.status
            if update.status is EnrollmentStatus.COMPLETED:
                changes["completion_date"] = _now()
        if update.lessons_progress is not None:
            changes["lessons_progress"] = list(update.lessons_progress)
        if update.notes is not None:
            changes["notes"] = update.notes

        enrollment = enrollment.model_copy(update=changes)
        self._enrollments[course_id] = enrollment
        return enrollment


class StorefrontBackend:
    """All stores of the reference backend."""

    def __init__(self):
        self.intents = PaymentIntentRegistry()
        self.orders = OrderStore(self.intents)
        self.enrollments = EnrollmentStore()
