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

"""Exceptions raised by storefront collaborators and the checkout flow."""

from typing import Optional


class StorefrontError(Exception):
    """Base class for all storefront errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ServiceError(StorefrontError):
    """A backend call failed (transport error, non-2xx status or malformed body)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """True when resubmitting the same request may succeed."""
        return self.status_code is None or self.status_code >= 500 or self.status_code == 429


class PaymentGatewayError(StorefrontError):
    """The payment sheet could not be initialized or presented."""


class CheckoutInProgressError(StorefrontError):
    """A checkout attempt is already running."""


class CartLockedError(StorefrontError):
    """The cart was mutated while a checkout attempt holds it."""


class InvalidTransitionError(StorefrontError):
    """A checkout attempt was moved along an edge the state machine does not allow."""
