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
Checkout Orchestrator

Drives a cart snapshot through the checkout steps:

    Idle -> IntentRequested -> IntentAcquired -> AuthorizationPending
         -> AuthorizationConfirmed -> OrderSubmitting -> Completed

Every non-terminal state can move to Failed. Each step's errors are caught
at that step and classified as exactly one ErrorKind:

- EmptyCart: nothing to buy, no external call is made
- IntentUnavailable: the payment intent could not be created
- PaymentInitError: the payment sheet could not be initialized
- PaymentDeclined: the card was declined or the user closed the sheet
- OrderCommitFailed: the payment was captured but the order was not persisted

Only a Completed attempt changes the cart: a fresh checkout clears it, a
resubmitted order removes only the products it paid for. OrderCommitFailed
keeps the payment reference so the same order can be resubmitted with
retry_order() until it is placed, without a second charge; every other
failure requires a fresh attempt.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, Iterable, Optional, Set

from .cart import CartStore
from .config import CheckoutSettings
from .constants import Constants
from .errors import CheckoutInProgressError, InvalidTransitionError, ServiceError
from .models import (
    CartSnapshot,
    CheckoutAttempt,
    CheckoutState,
    CompletedOutcome,
    ErrorKind,
    FailedOutcome,
    LineItem,
    OrderInput,
    OrderRecord,
    PaymentIntent,
    to_money,
)
from .presentation import present_outcome
from .services import AlertPresenter, OrderService, PaymentGateway, PaymentIntentService

logger = logging.getLogger(__name__)

constants = Constants()


TRANSITIONS: Dict[CheckoutState, Set[CheckoutState]] = {
    CheckoutState.IDLE: {CheckoutState.INTENT_REQUESTED, CheckoutState.FAILED},
    CheckoutState.INTENT_REQUESTED: {CheckoutState.INTENT_ACQUIRED, CheckoutState.FAILED},
    CheckoutState.INTENT_ACQUIRED: {CheckoutState.AUTHORIZATION_PENDING, CheckoutState.FAILED},
    CheckoutState.AUTHORIZATION_PENDING: {CheckoutState.AUTHORIZATION_CONFIRMED, CheckoutState.FAILED},
    CheckoutState.AUTHORIZATION_CONFIRMED: {CheckoutState.ORDER_SUBMITTING, CheckoutState.FAILED},
    CheckoutState.ORDER_SUBMITTING: {CheckoutState.COMPLETED, CheckoutState.FAILED},
    CheckoutState.COMPLETED: set(),
    CheckoutState.FAILED: set(),
}

# Failure kind for an unexpected error raised while in a given state
STEP_FAILURE_KIND: Dict[CheckoutState, ErrorKind] = {
    CheckoutState.IDLE: ErrorKind.INTENT_UNAVAILABLE,
    CheckoutState.INTENT_REQUESTED: ErrorKind.INTENT_UNAVAILABLE,
    CheckoutState.INTENT_ACQUIRED: ErrorKind.PAYMENT_INIT_ERROR,
    CheckoutState.AUTHORIZATION_PENDING: ErrorKind.PAYMENT_DECLINED,
    CheckoutState.AUTHORIZATION_CONFIRMED: ErrorKind.ORDER_COMMIT_FAILED,
    CheckoutState.ORDER_SUBMITTING: ErrorKind.ORDER_COMMIT_FAILED,
}


class StepFailed(Exception):
    """Raised by a step adapter once its error has been classified."""

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        order_input: Optional[OrderInput] = None,
    ):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message
        self.order_input = order_input


def transition(attempt: CheckoutAttempt, new_state: CheckoutState) -> None:
    """Move an attempt to a new state, enforcing the transition table."""
    allowed = TRANSITIONS[attempt.state]
    if new_state not in allowed:
        raise InvalidTransitionError(
            f"Checkout {attempt.id} cannot move from {attempt.state.value} to {new_state.value}"
        )
    logger.info(f"Checkout {attempt.id}: {attempt.state.value} -> {new_state.value}")
    attempt.state = new_state
    attempt.history.append(new_state)


class CheckoutOrchestrator:
    """
    Runs one checkout attempt at a time against injected collaborators.

    Args:
        cart: Cart store, locked while an attempt is in flight
        intent_service: Mints payment intents
        payment_gateway: Payment sheet (initialize + present)
        order_service: Persists orders
        presenter: Optional sink for terminal outcomes
        settings: Timeouts, retry policy, currency and merchant name
    """

    def __init__(
        self,
        cart: CartStore,
        intent_service: PaymentIntentService,
        payment_gateway: PaymentGateway,
        order_service: OrderService,
        presenter: Optional[AlertPresenter] = None,
        settings: Optional[CheckoutSettings] = None,
    ):
        self.cart = cart
        self.intent_service = intent_service
        self.payment_gateway = payment_gateway
        self.order_service = order_service
        self.presenter = presenter
        self.settings = settings or CheckoutSettings()

        self._active: Optional[CheckoutAttempt] = None
        self._last: Optional[CheckoutAttempt] = None
        # Oldest references are forgotten once the history is full
        self._used_handles: Deque[str] = deque(maxlen=constants.PAYMENT_REFERENCE_HISTORY)
        self._completed_references: Deque[str] = deque(maxlen=constants.PAYMENT_REFERENCE_HISTORY)

    @property
    def state(self) -> CheckoutState:
        if self._active is not None:
            return self._active.state
        return CheckoutState.IDLE

    @property
    def current_attempt(self) -> Optional[CheckoutAttempt]:
        return self._active

    @property
    def last_attempt(self) -> Optional[CheckoutAttempt]:
        return self._last

    @property
    def in_progress(self) -> bool:
        return self._active is not None

    async def checkout_from_cart(self):
        """Check out whatever the injected cart currently holds."""
        return await self.begin_checkout(self.cart.snapshot())

    async def begin_checkout(self, cart_snapshot: CartSnapshot):
        """
        Run a fresh checkout attempt for the snapshot.

        Returns:
            CompletedOutcome or FailedOutcome

        Raises:
            CheckoutInProgressError: If another attempt has not finished yet
        """
        attempt = self._start(CheckoutAttempt(cart_snapshot=cart_snapshot))
        logger.info(
            f"Checkout {attempt.id} started: {len(cart_snapshot)} item(s), total {cart_snapshot.total}"
        )
        try:
            outcome = await self._run(attempt)
        finally:
            self._release(attempt)
        return self._report(attempt, outcome)

    async def retry_order(self, failed: FailedOutcome):
        """
        Resubmit the order of an OrderCommitFailed outcome.

        The payment reference of the failed attempt is reused as is; no new
        intent is requested and the payment sheet is not shown again. On
        success only the products of the failed order are removed from the
        cart; items added since the failure stay.

        Raises:
            ValueError: If the outcome is not a retryable order failure, or
                its payment reference already has a completed order
            CheckoutInProgressError: If another attempt has not finished yet
        """
        if not isinstance(failed, FailedOutcome) or not failed.can_retry_order:
            raise ValueError("Only OrderCommitFailed outcomes with a payment reference can be retried")
        if failed.payment_reference in self._completed_references:
            raise ValueError(f"The order of checkout {failed.attempt_id} was already placed")

        order_input = failed.order_input
        snapshot = CartSnapshot(
            items=tuple(
                LineItem(
                    product_id=line.product_id,
                    name=line.name,
                    subject_name=line.subject_name,
                    subject_code=line.subject_code,
                    unit_price=line.price,
                    image_ref=line.image_ref,
                )
                for line in order_input.items
            )
        )
        attempt = CheckoutAttempt(
            cart_snapshot=snapshot,
            state=CheckoutState.AUTHORIZATION_CONFIRMED,
            history=[CheckoutState.AUTHORIZATION_CONFIRMED],
        )
        attempt.payment_intent = PaymentIntent(
            amount=order_input.total_price,
            currency=self.settings.currency,
            authorization_handle=failed.payment_reference,
            attempt_id=attempt.id,
        )
        self._start(attempt)
        logger.info(f"Checkout {attempt.id} resubmitting order of {failed.attempt_id}")
        try:
            outcome = await self._run_order_step(attempt, order_input)
        finally:
            self._release(attempt)
        return self._report(attempt, outcome, purchased=[line.product_id for line in order_input.items])

    # ------------------------------------------------------------------
    # Attempt lifecycle
    # ------------------------------------------------------------------

    def _start(self, attempt: CheckoutAttempt) -> CheckoutAttempt:
        # Runs before the first await, so overlapping calls cannot both pass
        if self._active is not None:
            logger.warning(f"Rejected checkout: attempt {self._active.id} is still {self._active.state.value}")
            raise CheckoutInProgressError(f"Checkout {self._active.id} is already in progress")
        self._active = attempt
        return attempt

    def _release(self, attempt: CheckoutAttempt) -> None:
        self.cart.unlock(attempt.id)
        if self._active is attempt:
            self._active = None
        self._last = attempt

    def _report(self, attempt: CheckoutAttempt, outcome, purchased: Optional[Iterable[str]] = None):
        """
        Apply the outcome to the cart and notify the presenter.

        `purchased` limits the cart cleanup to those product ids; without it
        the whole cart is cleared.
        """
        if isinstance(outcome, CompletedOutcome):
            self._completed_references.append(outcome.order.payment_reference)
            if purchased is None:
                self.cart.clear()
            else:
                for product_id in purchased:
                    self.cart.remove_item(product_id)
            logger.info(f"Checkout {attempt.id} completed: order {outcome.order.order_id}")
        else:
            logger.warning(
                f"Checkout {attempt.id} failed: {outcome.reason.value}"
                f"{': ' + outcome.message if outcome.message else ''}"
            )

        if self.presenter is not None:
            try:
                self.presenter.present(present_outcome(outcome))
            except Exception:
                logger.exception(f"Alert presenter failed for checkout {attempt.id}")
        return outcome

    async def _run(self, attempt: CheckoutAttempt):
        snapshot = attempt.cart_snapshot
        if snapshot.is_empty:
            return self._fail(attempt, ErrorKind.EMPTY_CART, "Your cart is empty. Add items before checkout.")

        try:
            self.cart.lock(attempt.id)
            transition(attempt, CheckoutState.INTENT_REQUESTED)
            intent = await self._acquire_intent(attempt)
            transition(attempt, CheckoutState.INTENT_ACQUIRED)

            await self._initialize_payment(attempt, intent)
            transition(attempt, CheckoutState.AUTHORIZATION_PENDING)

            await self._confirm_payment(attempt)
            transition(attempt, CheckoutState.AUTHORIZATION_CONFIRMED)
        except StepFailed as failure:
            return self._fail(attempt, failure.kind, failure.message)
        except asyncio.CancelledError:
            self._fail_unexpected(attempt, "Checkout was cancelled")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in checkout {attempt.id}")
            return self._fail_unexpected(attempt, str(e))

        order_input = OrderInput.from_snapshot(snapshot, intent.authorization_handle)
        return await self._run_order_step(attempt, order_input)

    async def _run_order_step(self, attempt: CheckoutAttempt, order_input: OrderInput):
        try:
            self.cart.lock(attempt.id)
            transition(attempt, CheckoutState.ORDER_SUBMITTING)
            record = await self._submit_order(attempt, order_input)
            attempt.order_record = record
            transition(attempt, CheckoutState.COMPLETED)
        except StepFailed as failure:
            return self._fail(attempt, failure.kind, failure.message, failure.order_input or order_input)
        except asyncio.CancelledError:
            self._fail_unexpected(attempt, "Checkout was cancelled", order_input)
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in checkout {attempt.id}")
            return self._fail_unexpected(attempt, str(e), order_input)

        return CompletedOutcome(attempt_id=attempt.id, order=record)

    def _fail(
        self,
        attempt: CheckoutAttempt,
        kind: ErrorKind,
        message: Optional[str] = None,
        order_input: Optional[OrderInput] = None,
    ) -> FailedOutcome:
        # Failed is reachable from every non-terminal state
        attempt.state = CheckoutState.FAILED
        attempt.history.append(CheckoutState.FAILED)
        attempt.failure = kind
        attempt.failure_message = message

        payment_reference = None
        if kind is ErrorKind.ORDER_COMMIT_FAILED and attempt.payment_intent is not None:
            payment_reference = attempt.payment_intent.authorization_handle
        else:
            order_input = None

        return FailedOutcome(
            attempt_id=attempt.id,
            reason=kind,
            message=message,
            payment_reference=payment_reference,
            order_input=order_input,
        )

    def _fail_unexpected(
        self,
        attempt: CheckoutAttempt,
        message: str,
        order_input: Optional[OrderInput] = None,
    ) -> FailedOutcome:
        kind = STEP_FAILURE_KIND.get(attempt.state, ErrorKind.ORDER_COMMIT_FAILED)
        return self._fail(attempt, kind, message or None, order_input)

    # ------------------------------------------------------------------
    # Step adapters
    # ------------------------------------------------------------------

    async def _acquire_intent(self, attempt: CheckoutAttempt) -> PaymentIntent:
        total = attempt.cart_snapshot.total
        try:
            intent = await asyncio.wait_for(
                self.intent_service.request_payment_intent(total, self.settings.currency),
                timeout=self.settings.intent_timeout,
            )
        except asyncio.TimeoutError:
            raise StepFailed(ErrorKind.INTENT_UNAVAILABLE, "Timed out while requesting a payment intent")
        except Exception as e:
            logger.warning(f"Payment intent request failed for checkout {attempt.id}: {e}")
            raise StepFailed(ErrorKind.INTENT_UNAVAILABLE, str(e) or "Could not initiate payment.")

        if intent is None or not (intent.authorization_handle or "").strip():
            raise StepFailed(ErrorKind.INTENT_UNAVAILABLE, "Payment intent did not include a client secret")

        handle = intent.authorization_handle
        if handle in self._used_handles:
            raise StepFailed(
                ErrorKind.INTENT_UNAVAILABLE,
                "Payment intent was already used by an earlier checkout",
            )

        if to_money(intent.amount) != total:
            raise StepFailed(
                ErrorKind.INTENT_UNAVAILABLE,
                f"Payment intent amount {intent.amount} does not match cart total {total}",
            )

        self._used_handles.append(handle)
        intent = intent.model_copy(update={"attempt_id": attempt.id})
        attempt.payment_intent = intent
        return intent

    async def _initialize_payment(self, attempt: CheckoutAttempt, intent: PaymentIntent) -> None:
        try:
            result = await asyncio.wait_for(
                self.payment_gateway.initialize(
                    intent.authorization_handle, self.settings.merchant_display_name
                ),
                timeout=self.settings.authorization_timeout,
            )
        except asyncio.TimeoutError:
            raise StepFailed(ErrorKind.PAYMENT_INIT_ERROR, "Timed out while preparing the payment form")
        except Exception as e:
            logger.warning(f"Payment sheet initialization failed for checkout {attempt.id}: {e}")
            raise StepFailed(ErrorKind.PAYMENT_INIT_ERROR, str(e) or None)

        if not result.success:
            raise StepFailed(ErrorKind.PAYMENT_INIT_ERROR, result.message)

    async def _confirm_payment(self, attempt: CheckoutAttempt) -> None:
        try:
            result = await asyncio.wait_for(
                self.payment_gateway.present(),
                timeout=self.settings.authorization_timeout,
            )
        except asyncio.TimeoutError:
            raise StepFailed(ErrorKind.PAYMENT_DECLINED, "Timed out waiting for payment authorization")
        except Exception as e:
            logger.warning(f"Payment sheet failed for checkout {attempt.id}: {e}")
            raise StepFailed(ErrorKind.PAYMENT_DECLINED, str(e) or None)

        attempt.payment_outcome = result
        if not result.success:
            raise StepFailed(ErrorKind.PAYMENT_DECLINED, result.message)

    async def _submit_order(self, attempt: CheckoutAttempt, order_input: OrderInput) -> OrderRecord:
        """Submit the order, resubmitting with the same payment reference on transient errors."""
        submissions = 1 + self.settings.order_submit_retries
        message = None

        for number in range(1, submissions + 1):
            try:
                record = await asyncio.wait_for(
                    self.order_service.submit_order(order_input),
                    timeout=self.settings.order_timeout,
                )
            except asyncio.TimeoutError:
                message = "Timed out while placing the order"
            except ServiceError as e:
                message = e.message or "Failed to place order."
                if not e.is_transient:
                    logger.warning(f"Order rejected for checkout {attempt.id}: {message}")
                    break
            except Exception as e:
                logger.exception(f"Order submission raised for checkout {attempt.id}")
                message = str(e) or "Failed to place order."
            else:
                if record is None:
                    message = "Failed to place order."
                elif record.payment_reference != order_input.payment_reference:
                    message = "Order service returned an order for a different payment"
                    break
                elif to_money(record.total_price) != order_input.total_price:
                    message = (
                        f"Order total {record.total_price} does not match paid amount "
                        f"{order_input.total_price}"
                    )
                    break
                else:
                    return record

            if number < submissions:
                logger.warning(
                    f"Order submission {number}/{submissions} failed for checkout {attempt.id}: "
                    f"{message}; retrying"
                )
                await asyncio.sleep(self.settings.order_retry_backoff * number)

        raise StepFailed(ErrorKind.ORDER_COMMIT_FAILED, message, order_input)
