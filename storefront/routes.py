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
FastAPI Routes for the Storefront Backend

Payment intents, orders and enrollment progress, backed by the in-memory
stores in store.py.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .schemas import EnrollmentUpdatePayload, OrderCreatePayload, PaymentIntentRequest
from .store import BackendUnavailableError, StorefrontBackend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Storefront"])

# Shared by all requests; tests override get_backend
backend = StorefrontBackend()


def get_backend() -> StorefrontBackend:
    return backend


class OrderFailureInjection(BaseModel):
    count: int = Field(..., ge=0, description="Number of upcoming orders to reject with 503")


@router.post("/payments/intent")
async def create_payment_intent(
    request: PaymentIntentRequest,
    store: StorefrontBackend = Depends(get_backend),
):
    """Mint a payment intent and return its client secret."""
    try:
        intent = store.intents.create(request.amount, request.currency)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse(intent.to_wire())


@router.post("/orders")
async def create_order(
    request: OrderCreatePayload,
    store: StorefrontBackend = Depends(get_backend),
):
    """
    Place an order for an authorized payment.

    Repeating a payment reference returns the existing order with 200.
    """
    try:
        order, created = store.orders.place_order(request)
    except BackendUnavailableError as e:
        logger.warning(f"Order rejected: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return JSONResponse(order.to_wire(), status_code=201 if created else 200)


@router.get("/orders")
async def list_orders(store: StorefrontBackend = Depends(get_backend)):
    """Purchase history, newest first."""
    orders = store.orders.list_orders()
    return JSONResponse({
        "count": len(orders),
        "orders": [order.to_wire() for order in orders],
    })


@router.get("/orders/{order_id}")
async def get_order(order_id: str, store: StorefrontBackend = Depends(get_backend)):
    order = store.orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order with ID {order_id} not found")
    return JSONResponse(order.to_wire())


@router.post("/enrollments/{course_id}")
async def enroll_in_course(course_id: str, store: StorefrontBackend = Depends(get_backend)):
    try:
        enrollment = store.enrollments.enroll(course_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return JSONResponse(
        {"success": True, "message": "Enrollment successful", "enrollment": enrollment.to_wire()},
        status_code=201,
    )


@router.get("/enrollments/{course_id}")
async def get_enrollment(course_id: str, store: StorefrontBackend = Depends(get_backend)):
    enrollment = store.enrollments.get(course_id)
    if enrollment is None:
        raise HTTPException(status_code=404, detail="You are not enrolled in this course.")
    return JSONResponse({"success": True, "enrollment": enrollment.to_wire()})


@router.patch("/enrollments/{course_id}")
async def update_enrollment(
    course_id: str,
    request: EnrollmentUpdatePayload,
    store: StorefrontBackend = Depends(get_backend),
):
    """Update progress, status, notes or lesson progress of an enrollment."""
    enrollment = store.enrollments.update(course_id, request)
    if enrollment is None:
        raise HTTPException(status_code=404, detail="Enrollment not found for this user/course.")
    return JSONResponse(
        {"success": True, "message": "Enrollment updated", "enrollment": enrollment.to_wire()}
    )


@router.post("/dev/order-failures")
async def inject_order_failures(
    request: OrderFailureInjection,
    store: StorefrontBackend = Depends(get_backend),
):
    """Reject the next N order submissions, for exercising the order retry path."""
    store.orders.fail_next_orders = request.count
    logger.info(f"Next {request.count} order(s) will be rejected")
    return JSONResponse({"failNextOrders": request.count})
