"""
Tests for storefront/orchestrator.py -- the checkout state machine.

Covers:
- Happy path (transition history, cart cleared, order total)
- Failure classification per step (intent, payment init, decline, order)
- Timeouts mapped to the failing step
- Order resubmission with the preserved payment reference
- Single attempt at a time, cart frozen while in flight
- Fresh payment intent per attempt
"""

import asyncio
from decimal import Decimal

import pytest

from storefront.cart import CartStore
from storefront.errors import (
    CartLockedError,
    CheckoutInProgressError,
    InvalidTransitionError,
    ServiceError,
)
from storefront.models import (
    CartSnapshot,
    CheckoutAttempt,
    CheckoutState,
    CompletedOutcome,
    ErrorKind,
    FailedOutcome,
)
from storefront import orchestrator as orchestrator_module
from storefront.orchestrator import TRANSITIONS, transition
from storefront.payment_gateway import (
    CANCELED_MESSAGE,
    DECLINED_MESSAGE,
    INVALID_SECRET_MESSAGE,
    PaymentScenario,
    SimulatedPaymentGateway,
)

from conftest import (
    BlockingGateway,
    FakeIntentService,
    FakeOrderService,
    RaisingGateway,
    make_item,
)

SUCCESS_HISTORY = [
    CheckoutState.IDLE,
    CheckoutState.INTENT_REQUESTED,
    CheckoutState.INTENT_ACQUIRED,
    CheckoutState.AUTHORIZATION_PENDING,
    CheckoutState.AUTHORIZATION_CONFIRMED,
    CheckoutState.ORDER_SUBMITTING,
    CheckoutState.COMPLETED,
]


def terminal_states(history):
    return [state for state in history if state.is_terminal]


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestSuccessfulCheckout:

    @pytest.mark.asyncio
    async def test_completes_and_clears_cart(self, make_orchestrator, cart, intents, orders):
        orchestrator = make_orchestrator()

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.kind == "Completed"
        assert isinstance(outcome, CompletedOutcome)
        assert len(cart) == 0
        assert outcome.order.total_price == Decimal("24.99")
        assert intents.calls == [Decimal("24.99")]
        assert len(orders.calls) == 1

    @pytest.mark.asyncio
    async def test_walks_every_state_in_order(self, make_orchestrator):
        orchestrator = make_orchestrator()

        await orchestrator.checkout_from_cart()

        assert orchestrator.last_attempt.history == SUCCESS_HISTORY
        assert orchestrator.state == CheckoutState.IDLE
        assert orchestrator.current_attempt is None

    @pytest.mark.asyncio
    async def test_order_mirrors_snapshot_with_single_units(self, make_orchestrator, cart, orders, intents):
        snapshot = cart.snapshot()
        orchestrator = make_orchestrator()

        outcome = await orchestrator.begin_checkout(snapshot)

        submitted = orders.calls[0]
        assert [line.product_id for line in submitted.items] == ["p1", "p2"]
        assert all(line.quantity == 1 for line in submitted.items)
        assert submitted.payment_reference == intents.handles[0]
        assert submitted.is_paid is True
        assert outcome.order.payment_reference == intents.handles[0]

    @pytest.mark.asyncio
    async def test_presents_success_with_order_id(self, make_orchestrator, presenter):
        orchestrator = make_orchestrator()

        outcome = await orchestrator.checkout_from_cart()

        assert len(presenter.presented) == 1
        alert = presenter.presented[0]
        assert alert.success is True
        assert alert.title == "Order Placed"
        assert alert.order_id == outcome.order.order_id

    @pytest.mark.asyncio
    async def test_attempt_keeps_intent_and_order(self, make_orchestrator, intents):
        orchestrator = make_orchestrator()

        outcome = await orchestrator.checkout_from_cart()

        attempt = orchestrator.last_attempt
        assert attempt.payment_intent.authorization_handle == intents.handles[0]
        assert attempt.payment_intent.attempt_id == attempt.id
        assert attempt.payment_outcome.success is True
        assert attempt.order_record == outcome.order
        assert outcome.attempt_id == attempt.id

    @pytest.mark.asyncio
    async def test_scenario_two_items(self, make_orchestrator):
        cart = CartStore([make_item("a", "19.99"), make_item("b", "5.00")])
        assert cart.total == Decimal("24.99")
        orchestrator = make_orchestrator(cart=cart)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.kind == "Completed"
        assert len(cart) == 0


# ---------------------------------------------------------------------------
# Failures before payment
# ---------------------------------------------------------------------------


class TestPrePaymentFailures:

    @pytest.mark.asyncio
    async def test_empty_cart_makes_no_external_calls(self, make_orchestrator, intents, orders, gateway, presenter):
        orchestrator = make_orchestrator(cart=CartStore())

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.kind == "Failed"
        assert outcome.reason == ErrorKind.EMPTY_CART
        assert intents.calls == []
        assert gateway.calls == []
        assert orders.calls == []
        assert presenter.presented[0].title == "Cart Empty"

    @pytest.mark.asyncio
    async def test_intent_error_keeps_cart(self, make_orchestrator, cart, gateway, orders):
        intents = FakeIntentService(error=ServiceError("Backend down", status_code=500))
        orchestrator = make_orchestrator(intent_service=intents)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.INTENT_UNAVAILABLE
        assert outcome.message == "Backend down"
        assert len(cart) == 2
        assert gateway.calls == []
        assert orders.calls == []
        assert outcome.payment_reference is None

    @pytest.mark.asyncio
    async def test_blank_client_secret_is_unavailable(self, make_orchestrator, gateway):
        orchestrator = make_orchestrator(intent_service=FakeIntentService(handle="   "))

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.INTENT_UNAVAILABLE
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_intent_amount_must_match_total(self, make_orchestrator, gateway):
        orchestrator = make_orchestrator(intent_service=FakeIntentService(amount=Decimal("1.00")))

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.INTENT_UNAVAILABLE
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_intent_timeout(self, make_orchestrator, settings, cart):
        settings = settings.model_copy(update={"intent_timeout": 0.05})
        orchestrator = make_orchestrator(intent_service=FakeIntentService(delay=5), settings=settings)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.INTENT_UNAVAILABLE
        assert "Timed out" in outcome.message
        assert len(cart) == 2

    @pytest.mark.asyncio
    async def test_payment_init_error(self, make_orchestrator, cart, orders):
        gateway = SimulatedPaymentGateway(PaymentScenario.INIT_ERROR)
        orchestrator = make_orchestrator(payment_gateway=gateway)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.PAYMENT_INIT_ERROR
        assert outcome.message == INVALID_SECRET_MESSAGE
        assert [call[0] for call in gateway.calls] == ["initialize"]
        assert orders.calls == []
        assert len(cart) == 2

    @pytest.mark.asyncio
    async def test_payment_init_exception(self, make_orchestrator, orders):
        orchestrator = make_orchestrator(payment_gateway=RaisingGateway("initialize"))

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.PAYMENT_INIT_ERROR
        assert outcome.message == "Merchant context rejected"
        assert orders.calls == []


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:

    @pytest.mark.asyncio
    async def test_decline_keeps_single_item_cart(self, make_orchestrator, orders):
        cart = CartStore([make_item("solo", "10.00")])
        orchestrator = make_orchestrator(
            cart=cart, payment_gateway=SimulatedPaymentGateway(PaymentScenario.DECLINE)
        )

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.kind == "Failed"
        assert outcome.reason == "PaymentDeclined"
        assert outcome.message == DECLINED_MESSAGE
        assert len(cart) == 1
        assert orders.calls == []

    @pytest.mark.asyncio
    async def test_cancel_is_a_decline(self, make_orchestrator, orders, cart):
        orchestrator = make_orchestrator(payment_gateway=SimulatedPaymentGateway(PaymentScenario.CANCEL))

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.PAYMENT_DECLINED
        assert outcome.message == CANCELED_MESSAGE
        assert outcome.retryable_from_scratch is True
        assert orders.calls == []
        assert len(cart) == 2

    @pytest.mark.asyncio
    async def test_present_exception_is_a_decline(self, make_orchestrator, orders):
        orchestrator = make_orchestrator(payment_gateway=RaisingGateway("present"))

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.PAYMENT_DECLINED
        assert orders.calls == []

    @pytest.mark.asyncio
    async def test_abandoned_sheet_times_out(self, make_orchestrator, settings, orders):
        settings = settings.model_copy(update={"authorization_timeout": 0.05})
        gateway = SimulatedPaymentGateway(PaymentScenario.SUCCESS, delay=5)
        orchestrator = make_orchestrator(payment_gateway=gateway, settings=settings)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.PAYMENT_DECLINED
        assert orders.calls == []
        assert orchestrator.last_attempt.state == CheckoutState.FAILED


# ---------------------------------------------------------------------------
# Order commit
# ---------------------------------------------------------------------------


class TestOrderCommit:

    @pytest.mark.asyncio
    async def test_rejected_order_keeps_payment_reference(self, make_orchestrator, cart, intents, presenter):
        orders = FakeOrderService(failures=[ServiceError("Invalid order", status_code=400)])
        orchestrator = make_orchestrator(order_service=orders)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.ORDER_COMMIT_FAILED
        assert outcome.payment_reference == intents.handles[0]
        assert outcome.order_input.payment_reference == intents.handles[0]
        assert outcome.retryable_from_scratch is False
        assert outcome.can_retry_order is True
        # 4xx responses are not resubmitted automatically
        assert len(orders.calls) == 1
        assert len(cart) == 2
        assert presenter.presented[-1].buttons[0].text == "Retry"

    @pytest.mark.asyncio
    async def test_transient_failure_is_resubmitted(self, make_orchestrator, cart):
        orders = FakeOrderService(failures=[ServiceError("Service unavailable", status_code=503)])
        orchestrator = make_orchestrator(order_service=orders)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.kind == "Completed"
        assert len(orders.calls) == 2
        assert orders.calls[0].payment_reference == orders.calls[1].payment_reference
        assert len(cart) == 0

    @pytest.mark.asyncio
    async def test_retries_stop_at_configured_bound(self, make_orchestrator, cart):
        orders = FakeOrderService(failures=[ServiceError("down", status_code=503)] * 3)
        orchestrator = make_orchestrator(order_service=orders)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.ORDER_COMMIT_FAILED
        assert len(orders.calls) == 3
        assert len({call.payment_reference for call in orders.calls}) == 1
        assert len(cart) == 2

    @pytest.mark.asyncio
    async def test_order_timeout(self, make_orchestrator, settings):
        settings = settings.model_copy(update={"order_timeout": 0.05, "order_submit_retries": 0})
        orders = FakeOrderService(delay=5)
        orchestrator = make_orchestrator(order_service=orders, settings=settings)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.ORDER_COMMIT_FAILED
        assert outcome.payment_reference is not None
        assert "Timed out" in outcome.message

    @pytest.mark.asyncio
    async def test_order_for_other_payment_is_rejected(self, make_orchestrator, cart):
        orders = FakeOrderService()
        orders.reference_override = "pi_other_secret_x"
        orchestrator = make_orchestrator(order_service=orders)

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.ORDER_COMMIT_FAILED
        assert len(cart) == 2


class TestRetryOrder:

    @pytest.mark.asyncio
    async def test_resubmits_without_new_authorization(self, make_orchestrator, cart, intents, gateway, settings):
        settings = settings.model_copy(update={"order_submit_retries": 0})
        orders = FakeOrderService(failures=[ServiceError("down", status_code=503)])
        orchestrator = make_orchestrator(order_service=orders, settings=settings)

        failed = await orchestrator.checkout_from_cart()
        assert failed.reason == ErrorKind.ORDER_COMMIT_FAILED
        presents_before = [call for call in gateway.calls if call[0] == "present"]

        outcome = await orchestrator.retry_order(failed)

        assert outcome.kind == "Completed"
        assert outcome.order.payment_reference == failed.payment_reference
        assert outcome.order.total_price == Decimal("24.99")
        assert len(intents.calls) == 1
        assert [call for call in gateway.calls if call[0] == "present"] == presents_before
        assert len(cart) == 0
        assert orchestrator.last_attempt.history == [
            CheckoutState.AUTHORIZATION_CONFIRMED,
            CheckoutState.ORDER_SUBMITTING,
            CheckoutState.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_failed_retry_keeps_reference(self, make_orchestrator, settings, cart):
        settings = settings.model_copy(update={"order_submit_retries": 0})
        orders = FakeOrderService(failures=[ServiceError("down", status_code=503)] * 2)
        orchestrator = make_orchestrator(order_service=orders, settings=settings)

        failed = await orchestrator.checkout_from_cart()
        again = await orchestrator.retry_order(failed)

        assert again.reason == ErrorKind.ORDER_COMMIT_FAILED
        assert again.payment_reference == failed.payment_reference
        assert again.can_retry_order is True
        assert len(cart) == 2

    @pytest.mark.asyncio
    async def test_rejects_other_failures(self, make_orchestrator):
        orchestrator = make_orchestrator(payment_gateway=SimulatedPaymentGateway(PaymentScenario.DECLINE))
        declined = await orchestrator.checkout_from_cart()

        with pytest.raises(ValueError):
            await orchestrator.retry_order(declined)

    @pytest.mark.asyncio
    async def test_rejects_completed_outcome(self, make_orchestrator):
        orchestrator = make_orchestrator()
        completed = await orchestrator.checkout_from_cart()

        with pytest.raises(ValueError):
            await orchestrator.retry_order(completed)

    @pytest.mark.asyncio
    async def test_keeps_items_added_after_failure(self, make_orchestrator, cart, settings):
        settings = settings.model_copy(update={"order_submit_retries": 0})
        orders = FakeOrderService(failures=[ServiceError("down", status_code=503)])
        orchestrator = make_orchestrator(order_service=orders, settings=settings)

        failed = await orchestrator.checkout_from_cart()
        cart.add_item(make_item("p3", "7.50"))
        outcome = await orchestrator.retry_order(failed)

        assert outcome.kind == "Completed"
        assert [line.product_id for line in outcome.order.items] == ["p1", "p2"]
        assert [item.product_id for item in cart.items] == ["p3"]

    @pytest.mark.asyncio
    async def test_completed_order_cannot_be_retried_again(self, make_orchestrator, cart, settings, presenter):
        settings = settings.model_copy(update={"order_submit_retries": 0})
        orders = FakeOrderService(failures=[ServiceError("down", status_code=503)])
        orchestrator = make_orchestrator(order_service=orders, settings=settings)

        failed = await orchestrator.checkout_from_cart()
        await orchestrator.retry_order(failed)
        cart.add_item(make_item("p9", "3.00"))

        with pytest.raises(ValueError):
            await orchestrator.retry_order(failed)

        assert "p9" in cart
        assert len(orders.calls) == 2
        assert [alert.success for alert in presenter.presented] == [False, True]


# ---------------------------------------------------------------------------
# Concurrency and idempotence
# ---------------------------------------------------------------------------


class TestSingleAttempt:

    @pytest.mark.asyncio
    async def test_overlapping_checkout_is_rejected(self, make_orchestrator, intents):
        gateway = BlockingGateway()
        orchestrator = make_orchestrator(payment_gateway=gateway)

        first = asyncio.create_task(orchestrator.checkout_from_cart())
        await gateway.entered.wait()

        with pytest.raises(CheckoutInProgressError):
            await orchestrator.checkout_from_cart()

        gateway.release.set()
        outcome = await first

        assert outcome.kind == "Completed"
        assert len(intents.calls) == 1

    @pytest.mark.asyncio
    async def test_gathered_calls_request_one_intent(self, make_orchestrator, cart):
        intents = FakeIntentService(delay=0.01)
        orchestrator = make_orchestrator(intent_service=intents)
        snapshot = cart.snapshot()

        results = await asyncio.gather(
            orchestrator.begin_checkout(snapshot),
            orchestrator.begin_checkout(snapshot),
            return_exceptions=True,
        )

        assert sum(isinstance(result, CheckoutInProgressError) for result in results) == 1
        assert sum(isinstance(result, CompletedOutcome) for result in results) == 1
        assert len(intents.calls) == 1

    @pytest.mark.asyncio
    async def test_cart_is_frozen_while_in_flight(self, make_orchestrator, cart, orders):
        gateway = BlockingGateway()
        orchestrator = make_orchestrator(payment_gateway=gateway)

        task = asyncio.create_task(orchestrator.checkout_from_cart())
        await gateway.entered.wait()

        assert orchestrator.state == CheckoutState.AUTHORIZATION_PENDING
        assert cart.is_locked
        with pytest.raises(CartLockedError):
            cart.add_item(make_item("p3", "7.50"))
        with pytest.raises(CartLockedError):
            cart.remove_item("p1")
        with pytest.raises(CartLockedError):
            cart.clear()

        gateway.release.set()
        await task

        assert [line.product_id for line in orders.calls[0].items] == ["p1", "p2"]
        assert not cart.is_locked

    @pytest.mark.asyncio
    async def test_cart_unlocked_after_failure(self, make_orchestrator, cart):
        orchestrator = make_orchestrator(payment_gateway=SimulatedPaymentGateway(PaymentScenario.DECLINE))

        await orchestrator.checkout_from_cart()

        assert not cart.is_locked
        assert cart.add_item(make_item("p3", "7.50")) is True

    @pytest.mark.asyncio
    async def test_each_attempt_gets_fresh_intent(self, make_orchestrator, intents, cart):
        snapshot = cart.snapshot()
        orchestrator = make_orchestrator(payment_gateway=SimulatedPaymentGateway(PaymentScenario.DECLINE))

        first = await orchestrator.begin_checkout(snapshot)
        orchestrator.payment_gateway = SimulatedPaymentGateway(PaymentScenario.SUCCESS)
        second = await orchestrator.begin_checkout(snapshot)

        assert first.reason == ErrorKind.PAYMENT_DECLINED
        assert second.kind == "Completed"
        assert len(intents.calls) == 2
        assert intents.handles[0] != intents.handles[1]
        assert second.order.payment_reference == intents.handles[1]
        assert first.attempt_id != second.attempt_id

    @pytest.mark.asyncio
    async def test_stale_client_secret_is_not_reused(self, make_orchestrator, cart, orders):
        intents = FakeIntentService(handle="pi_same_secret_abc")
        orchestrator = make_orchestrator(
            intent_service=intents,
            payment_gateway=SimulatedPaymentGateway(PaymentScenario.DECLINE),
        )

        await orchestrator.checkout_from_cart()
        orchestrator.payment_gateway = SimulatedPaymentGateway(PaymentScenario.SUCCESS)
        outcome = await orchestrator.checkout_from_cart()

        assert outcome.reason == ErrorKind.INTENT_UNAVAILABLE
        assert orders.calls == []

    @pytest.mark.asyncio
    async def test_used_secret_history_is_bounded(self, make_orchestrator, monkeypatch):
        monkeypatch.setattr(orchestrator_module.constants, "PAYMENT_REFERENCE_HISTORY", 1)
        intents = FakeIntentService(handle="pi_a_secret_1")
        orchestrator = make_orchestrator(
            intent_service=intents,
            payment_gateway=SimulatedPaymentGateway(PaymentScenario.DECLINE),
        )

        first = await orchestrator.checkout_from_cart()
        intents.handle = "pi_b_secret_2"
        second = await orchestrator.checkout_from_cart()
        intents.handle = "pi_a_secret_1"
        third = await orchestrator.checkout_from_cart()

        assert first.reason == ErrorKind.PAYMENT_DECLINED
        assert second.reason == ErrorKind.PAYMENT_DECLINED
        # Only the most recent secret is remembered
        assert third.reason == ErrorKind.PAYMENT_DECLINED


class TestTermination:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("scenario", list(PaymentScenario))
    async def test_exactly_one_terminal_state(self, make_orchestrator, scenario):
        orchestrator = make_orchestrator(payment_gateway=SimulatedPaymentGateway(scenario))

        outcome = await orchestrator.checkout_from_cart()

        history = orchestrator.last_attempt.history
        assert len(terminal_states(history)) == 1
        assert history[-1].is_terminal
        expected = CheckoutState.COMPLETED if outcome.kind == "Completed" else CheckoutState.FAILED
        assert history[-1] == expected

    @pytest.mark.asyncio
    async def test_presenter_errors_do_not_escape(self, make_orchestrator):
        class BrokenPresenter:
            def present(self, model):
                raise RuntimeError("UI gone")

        orchestrator = make_orchestrator(presenter=BrokenPresenter())

        outcome = await orchestrator.checkout_from_cart()

        assert outcome.kind == "Completed"

    @pytest.mark.asyncio
    async def test_unexpected_gateway_result_is_classified(self, make_orchestrator):
        class NoneGateway(SimulatedPaymentGateway):
            async def present(self):
                return None

        orchestrator = make_orchestrator(payment_gateway=NoneGateway())

        outcome = await orchestrator.checkout_from_cart()

        assert isinstance(outcome, FailedOutcome)
        assert outcome.reason == ErrorKind.PAYMENT_DECLINED


class TestTransitionTable:

    def test_failed_reachable_from_every_non_terminal_state(self):
        for state, targets in TRANSITIONS.items():
            if state.is_terminal:
                assert targets == set()
            else:
                assert CheckoutState.FAILED in targets

    def test_illegal_transition_raises(self):
        attempt = CheckoutAttempt(cart_snapshot=CartSnapshot(items=(make_item("p1", "1.00"),)))

        with pytest.raises(InvalidTransitionError):
            transition(attempt, CheckoutState.ORDER_SUBMITTING)

        assert attempt.state == CheckoutState.IDLE
