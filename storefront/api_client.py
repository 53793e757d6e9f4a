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
Storefront REST client.

Implements the payment intent, order and enrollment contracts over HTTP
with httpx. Every failure (transport error, non-2xx status, body that does
not match the wire schema) is raised as ServiceError.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .config import CheckoutSettings
from .constants import Constants
from .errors import ServiceError
from .models import LessonProgress, OrderInput, OrderRecord, PaymentIntent
from .schemas import (
    EnrollmentPayload,
    EnrollmentUpdatePayload,
    LessonProgressPayload,
    OrderCreatePayload,
    OrderPayload,
    PaymentIntentPayload,
    PaymentIntentRequest,
)
from .services import EnrollmentService, OrderService, PaymentIntentService

logger = logging.getLogger(__name__)

constants = Constants()


def _error_detail(response: httpx.Response) -> str:
    """Pull a readable message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    if isinstance(body, dict):
        for key in ("detail", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}"


class StorefrontApiClient(PaymentIntentService, OrderService, EnrollmentService):
    """
    Async client for the storefront backend.

    Args:
        base_url: Backend root, e.g. http://localhost:10999
        token: Optional bearer token
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (ASGITransport in tests)
    """

    def __init__(
        self,
        base_url: str = constants.DEFAULT_API_URL,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: CheckoutSettings, **kwargs) -> "StorefrontApiClient":
        return cls(base_url=settings.api_url, token=settings.api_token, **kwargs)

    async def __aenter__(self) -> "StorefrontApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException:
            raise ServiceError(f"{method} {path} timed out")
        except httpx.HTTPError as e:
            raise ServiceError(f"Cannot reach storefront backend: {e}")

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning(f"{method} {path} returned {response.status_code}: {detail}")
            raise ServiceError(detail, status_code=response.status_code)

        try:
            return response.json()
        except ValueError:
            raise ServiceError(f"Malformed response from {path}", status_code=response.status_code)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def request_payment_intent(self, amount: Decimal, currency: str) -> PaymentIntent:
        body = PaymentIntentRequest(amount=amount, currency=currency).to_wire()
        data = await self._request("POST", constants.API_PAYMENT_INTENT_PATH, json=body)
        try:
            payload = PaymentIntentPayload.model_validate(data)
        except ValidationError as e:
            raise ServiceError(f"Malformed payment intent: {e.error_count()} invalid field(s)")

        return PaymentIntent(
            amount=payload.amount,
            currency=payload.currency,
            authorization_handle=payload.client_secret,
        )

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def submit_order(self, order_input: OrderInput) -> OrderRecord:
        body = OrderCreatePayload.from_order_input(order_input).to_wire()
        data = await self._request("POST", constants.API_ORDERS_PATH, json=body)
        return self._parse_order(data)

    async def get_order(self, order_id: str) -> OrderRecord:
        data = await self._request("GET", f"{constants.API_ORDERS_PATH}/{order_id}")
        return self._parse_order(data)

    async def list_orders(self) -> List[OrderRecord]:
        data = await self._request("GET", constants.API_ORDERS_PATH)
        if not isinstance(data, dict) or not isinstance(data.get("orders"), list):
            raise ServiceError("Malformed order history")
        return [self._parse_order(order) for order in data["orders"]]

    @staticmethod
    def _parse_order(data: Any) -> OrderRecord:
        try:
            return OrderPayload.model_validate(data).to_record()
        except ValidationError as e:
            raise ServiceError(f"Malformed order: {e.error_count()} invalid field(s)")

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    async def enroll(self, course_id: str) -> EnrollmentPayload:
        data = await self._request("POST", f"{constants.API_ENROLLMENTS_PATH}/{course_id}")
        return self._parse_enrollment(data)

    async def get_enrollment(self, course_id: str) -> EnrollmentPayload:
        data = await self._request("GET", f"{constants.API_ENROLLMENTS_PATH}/{course_id}")
        return self._parse_enrollment(data)

    async def update_lesson_progress(self, course_id: str, lessons: List[LessonProgress]) -> None:
        body = EnrollmentUpdatePayload(
            lessons_progress=[LessonProgressPayload.from_progress(lesson) for lesson in lessons]
        ).to_wire()
        await self._request("PATCH", f"{constants.API_ENROLLMENTS_PATH}/{course_id}", json=body)

    @staticmethod
    def _parse_enrollment(data: Any) -> EnrollmentPayload:
        enrollment = data.get("enrollment") if isinstance(data, dict) else None
        try:
            return EnrollmentPayload.model_validate(enrollment)
        except ValidationError as e:
            raise ServiceError(f"Malformed enrollment: {e.error_count()} invalid field(s)")

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", constants.API_HEALTH_PATH)

    async def inject_order_failures(self, count: int) -> None:
        """Ask the reference backend to reject the next `count` orders with 503."""
        await self._request("POST", "/api/dev/order-failures", json={"count": count})
