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
Outcome presentation.

Maps a checkout outcome to the alert the UI shows. The mapping is a pure
function; the UI decides how to render the model.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .constants import Constants
from .models import CompletedOutcome, ErrorKind, FailedOutcome

constants = Constants()


class AlertAction(str, Enum):
    """What a button does when pressed."""
    DISMISS = "dismiss"
    NAVIGATE = "navigate"
    RETRY_ORDER = "retry_order"


class AlertButton(BaseModel):
    text: str
    action: AlertAction = AlertAction.DISMISS
    target: Optional[str] = Field(None, description="Screen name for navigate actions")


class PresentationModel(BaseModel):
    """Everything the UI needs to show a single outcome alert."""
    title: str
    message: str
    icon: str
    buttons: List[AlertButton] = Field(default_factory=list)
    success: bool = False
    order_id: Optional[str] = None
    payment_reference: Optional[str] = None


_FAILURE_TITLES = {
    ErrorKind.EMPTY_CART: "Cart Empty",
    ErrorKind.INTENT_UNAVAILABLE: "Checkout Failed",
    ErrorKind.PAYMENT_INIT_ERROR: "Payment Failed",
    ErrorKind.PAYMENT_DECLINED: "Payment Failed",
    ErrorKind.ORDER_COMMIT_FAILED: "Checkout Failed",
}

_FAILURE_DEFAULT_MESSAGES = {
    ErrorKind.EMPTY_CART: "Your cart is empty. Add items before checkout.",
    ErrorKind.INTENT_UNAVAILABLE: "Could not initiate payment.",
    ErrorKind.PAYMENT_INIT_ERROR: "The payment form could not be opened.",
    ErrorKind.PAYMENT_DECLINED: "The payment was not completed.",
    ErrorKind.ORDER_COMMIT_FAILED: "An error occurred during checkout.",
}

_FAILURE_ICONS = {
    ErrorKind.EMPTY_CART: "cart-outline",
    ErrorKind.INTENT_UNAVAILABLE: "close-circle",
    ErrorKind.PAYMENT_INIT_ERROR: "cart-outline",
    ErrorKind.PAYMENT_DECLINED: "cart-outline",
    ErrorKind.ORDER_COMMIT_FAILED: "close-circle",
}

ORDER_PLACED_MESSAGE = (
    "You have successfully purchased the products in your cart. Check your history for details."
)
PAYMENT_CAPTURED_NOTE = "Your payment was received; tap Retry to finish placing your order."


def present_outcome(outcome) -> PresentationModel:
    """Build the alert for a completed or failed checkout."""
    if isinstance(outcome, CompletedOutcome):
        return PresentationModel(
            title="Order Placed",
            message=ORDER_PLACED_MESSAGE,
            icon="checkmark-circle",
            buttons=[
                AlertButton(
                    text="OK",
                    action=AlertAction.NAVIGATE,
                    target=constants.PURCHASE_HISTORY_SCREEN,
                )
            ],
            success=True,
            order_id=outcome.order.order_id,
            payment_reference=outcome.order.payment_reference,
        )

    if not isinstance(outcome, FailedOutcome):
        raise TypeError(f"Unsupported outcome: {type(outcome).__name__}")

    reason = outcome.reason
    message = outcome.message or _FAILURE_DEFAULT_MESSAGES[reason]
    buttons = [AlertButton(text="OK")]

    if outcome.can_retry_order:
        message = f"{message} {PAYMENT_CAPTURED_NOTE}"
        buttons.insert(0, AlertButton(text="Retry", action=AlertAction.RETRY_ORDER))

    return PresentationModel(
        title=_FAILURE_TITLES[reason],
        message=message,
        icon=_FAILURE_ICONS[reason],
        buttons=buttons,
        payment_reference=outcome.payment_reference,
    )
