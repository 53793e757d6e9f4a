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
Wire schemas for the storefront REST API.

Field names on the wire are camelCase (orderItems, totalPrice, clientSecret,
lessonsProgress). The same models are used by the API client to build
requests and by the reference backend to validate them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import Constants
from .models import LessonProgress, OrderInput, OrderLine, OrderRecord

constants = Constants()


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PaymentIntentRequest(WireModel):
    """Body of POST /api/payments/intent."""
    amount: Decimal = Field(..., gt=0, description="Amount to charge in major currency units")
    currency: str = constants.DEFAULT_CURRENCY


class PaymentIntentPayload(WireModel):
    """Payment intent returned by the backend."""
    id: str
    client_secret: str = Field(..., alias="clientSecret")
    amount: Decimal
    currency: str


class OrderItemPayload(WireModel):
    """One order line. The storefront sells a single unit per line."""
    product: str
    exam_name: str = Field(..., alias="examName")
    subject_name: Optional[str] = Field(None, alias="subjectName")
    subject_code: Optional[str] = Field(None, alias="subjectCode")
    price: Decimal = Field(..., ge=0)
    image: Optional[str] = None
    quantity: int = Field(1, ge=1, le=1)

    @classmethod
    def from_order_line(cls, line: OrderLine) -> "OrderItemPayload":
        return cls(
            product=line.product_id,
            exam_name=line.name,
            subject_name=line.subject_name,
            subject_code=line.subject_code,
            price=line.price,
            image=line.image_ref,
            quantity=line.quantity,
        )

    def to_order_line(self) -> OrderLine:
        return OrderLine(
            product_id=self.product,
            name=self.exam_name,
            subject_name=self.subject_name,
            subject_code=self.subject_code,
            price=self.price,
            image_ref=self.image,
            quantity=self.quantity,
        )


class PaymentResultPayload(WireModel):
    client_secret: str = Field(..., alias="clientSecret", min_length=1)


class OrderCreatePayload(WireModel):
    """Body of POST /api/orders."""
    order_items: List[OrderItemPayload] = Field(..., alias="orderItems", min_length=1)
    total_price: Decimal = Field(..., alias="totalPrice", ge=0)
    payment_method: str = Field(constants.PAYMENT_METHOD, alias="paymentMethod")
    is_paid: bool = Field(True, alias="isPaid")
    paid_at: Optional[datetime] = Field(None, alias="paidAt")
    payment_result: PaymentResultPayload = Field(..., alias="paymentResult")

    @classmethod
    def from_order_input(cls, order_input: OrderInput) -> "OrderCreatePayload":
        return cls(
            order_items=[OrderItemPayload.from_order_line(line) for line in order_input.items],
            total_price=order_input.total_price,
            payment_method=order_input.payment_method,
            is_paid=order_input.is_paid,
            paid_at=order_input.paid_at,
            payment_result=PaymentResultPayload(client_secret=order_input.payment_reference),
        )


class OrderPayload(OrderCreatePayload):
    """Order as stored and returned by the backend."""
    id: str = Field(..., alias="_id")
    created_at: datetime = Field(..., alias="createdAt")

    def to_record(self) -> OrderRecord:
        return OrderRecord(
            order_id=self.id,
            items=tuple(item.to_order_line() for item in self.order_items),
            total_price=self.total_price,
            payment_reference=self.payment_result.client_secret,
            is_paid=self.is_paid,
            paid_at=self.paid_at,
        )


class LessonProgressPayload(WireModel):
    lesson_id: str = Field(..., alias="lessonId")
    watched_duration: int = Field(0, alias="watchedDuration", ge=0)
    completed: bool = False

    @classmethod
    def from_progress(cls, progress: LessonProgress) -> "LessonProgressPayload":
        return cls(
            lesson_id=progress.lesson_id,
            watched_duration=progress.watched_duration,
            completed=progress.completed,
        )

    def to_progress(self) -> LessonProgress:
        return LessonProgress(
            lesson_id=self.lesson_id,
            watched_duration=self.watched_duration,
            completed=self.completed,
        )


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class EnrollmentUpdatePayload(WireModel):
    """Body of PATCH /api/enrollments/{course_id}; omitted fields are left unchanged."""
    progress: Optional[int] = Field(None, ge=0, le=100)
    status: Optional[EnrollmentStatus] = None
    lessons_progress: Optional[List[LessonProgressPayload]] = Field(None, alias="lessonsProgress")
    notes: Optional[str] = None


class EnrollmentPayload(WireModel):
    course: str
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    progress: int = 0
    lessons_progress: List[LessonProgressPayload] = Field(default_factory=list, alias="lessonsProgress")
    notes: str = ""
    enrolled_at: datetime = Field(..., alias="enrolledAt")
    completion_date: Optional[datetime] = Field(None, alias="completionDate")
