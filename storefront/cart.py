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

"""Cart store shared between the UI layer and the checkout orchestrator."""

import logging
from decimal import Decimal
from typing import List, Optional

from .errors import CartLockedError
from .models import CartSnapshot, LineItem

logger = logging.getLogger(__name__)


class CartStore:
    """
    Holds the priced line items the user intends to buy.

    The store is passed explicitly to whoever needs it. While a checkout
    attempt holds the lock, every mutation is rejected; the orchestrator
    releases the lock before clearing the cart on a completed order.
    """

    def __init__(self, items: Optional[List[LineItem]] = None):
        self._items: List[LineItem] = []
        self._locked_by: Optional[str] = None
        for item in items or []:
            self.add_item(item)

    @property
    def items(self) -> List[LineItem]:
        return list(self._items)

    @property
    def total(self) -> Decimal:
        return self.snapshot().total

    @property
    def is_locked(self) -> bool:
        return self._locked_by is not None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, product_id: str) -> bool:
        return any(item.product_id == product_id for item in self._items)

    def add_item(self, item: LineItem) -> bool:
        """
        Add a line item.

        Returns:
            False if the product is already in the cart (one unit per product)
        """
        self._ensure_unlocked("add_item")
        if item.product_id in self:
            return False
        self._items.append(item)
        return True

    def remove_item(self, product_id: str) -> bool:
        """Remove a product. Returns False when it was not in the cart."""
        self._ensure_unlocked("remove_item")
        remaining = [item for item in self._items if item.product_id != product_id]
        removed = len(remaining) != len(self._items)
        self._items = remaining
        return removed

    def clear(self) -> None:
        self._ensure_unlocked("clear")
        self._items = []

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(items=tuple(self._items))

    def lock(self, owner: str) -> None:
        """Freeze the cart for the duration of a checkout attempt."""
        if self._locked_by is not None and self._locked_by != owner:
            raise CartLockedError(f"Cart is already held by checkout {self._locked_by}")
        self._locked_by = owner

    def unlock(self, owner: str) -> None:
        if self._locked_by == owner:
            self._locked_by = None

    def _ensure_unlocked(self, operation: str) -> None:
        if self._locked_by is not None:
            logger.warning(f"Rejected cart {operation} during checkout {self._locked_by}")
            raise CartLockedError(
                f"Cannot {operation.replace('_', ' ')} while checkout {self._locked_by} is in progress"
            )
