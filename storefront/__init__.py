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
Storefront Checkout Package

Takes a cart of priced items through payment authorization and order
commit, keeping the cart, the payment provider and the order store
consistent when a step fails.

Main entry points:
- CheckoutOrchestrator: begin_checkout(), retry_order()
- CartStore: the cart shared with the UI layer
- present_outcome: maps an outcome to the alert shown to the user
- LessonProgressTracker: optimistic lesson progress sync
"""

from .cart import CartStore
from .config import CheckoutSettings
from .models import (
    CartSnapshot,
    CheckoutState,
    CompletedOutcome,
    ErrorKind,
    FailedOutcome,
    LineItem,
    OrderRecord,
)
from .orchestrator import CheckoutOrchestrator
from .presentation import PresentationModel, present_outcome
from .progress import LessonProgressTracker

__all__ = [
    "CartSnapshot",
    "CartStore",
    "CheckoutOrchestrator",
    "CheckoutSettings",
    "CheckoutState",
    "CompletedOutcome",
    "ErrorKind",
    "FailedOutcome",
    "LessonProgressTracker",
    "LineItem",
    "OrderRecord",
    "PresentationModel",
    "present_outcome",
]
