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
Collaborator contracts used by the checkout orchestrator.

Implementations:
- StorefrontApiClient (api_client.py): PaymentIntentService, OrderService, EnrollmentService
- SimulatedPaymentGateway (payment_gateway.py): PaymentGateway
- ConsoleAlertPresenter (storefront_cli): AlertPresenter
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List

from .models import AuthorizationResult, LessonProgress, OrderInput, OrderRecord, PaymentIntent
from .presentation import PresentationModel


class PaymentIntentService(ABC):
    """Backend that mints payment intents for a checkout total."""

    @abstractmethod
    async def request_payment_intent(self, amount: Decimal, currency: str) -> PaymentIntent:
        """
        Create a payment intent for the given amount.

        Raises:
            ServiceError: If the intent could not be created
        """


class PaymentGateway(ABC):
    """
    User-facing payment authorization (the payment sheet).

    Authorization is two calls: initialize with the intent's client secret,
    then present the sheet and wait for the user. Both must succeed.
    """

    @abstractmethod
    async def initialize(self, authorization_handle: str, merchant_display_name: str) -> AuthorizationResult:
        """Prepare the payment sheet for the given client secret."""

    @abstractmethod
    async def present(self) -> AuthorizationResult:
        """Show the payment sheet; a decline or a user cancellation is an unsuccessful result."""


class OrderService(ABC):
    """Backend that durably persists orders."""

    @abstractmethod
    async def submit_order(self, order_input: OrderInput) -> OrderRecord:
        """
        Persist an order.

        Submitting the same payment reference twice must return the same order.

        Raises:
            ServiceError: If the order could not be persisted
        """


class AlertPresenter(ABC):
    """Sink for terminal outcomes shown to the user."""

    @abstractmethod
    def present(self, model: PresentationModel) -> None:
        pass


class EnrollmentService(ABC):
    """Backend holding per-course lesson progress."""

    @abstractmethod
    async def update_lesson_progress(self, course_id: str, lessons: List[LessonProgress]) -> None:
        """Replace the stored lesson progress for a course."""
