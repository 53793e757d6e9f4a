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
Storefront CLI - Command line interface to exercise the checkout flow.

Usage:
    python -m storefront_cli --help
    python -m storefront_cli server
    python -m storefront_cli checkout --scenario decline
    python -m storefront_cli health
"""

import asyncio
import logging
import sys
from decimal import Decimal
from typing import List, Optional

import click
import httpx

from storefront.api_client import StorefrontApiClient
from storefront.cart import CartStore
from storefront.config import CheckoutSettings
from storefront.errors import ServiceError
from storefront.models import CompletedOutcome, FailedOutcome, LineItem
from storefront.orchestrator import CheckoutOrchestrator
from storefront.payment_gateway import PaymentScenario, SimulatedPaymentGateway
from storefront.presentation import PresentationModel
from storefront.services import AlertPresenter


def print_header(title: str):
    """Print a header with borders."""
    border = "=" * (len(title) + 4)
    print(f"\n{border}")
    print(f"| {title} |")
    print(f"{border}\n")


def print_success(msg: str):
    print(f"[OK] {msg}")


def print_error(msg: str):
    print(f"[ERROR] {msg}")


def print_info(msg: str):
    print(f"[INFO] {msg}")


class ConsoleAlertPresenter(AlertPresenter):
    """Prints checkout alerts to the terminal."""

    def __init__(self):
        self.presented: List[PresentationModel] = []

    def present(self, model: PresentationModel) -> None:
        self.presented.append(model)
        show = print_success if model.success else print_error
        show(f"{model.title}: {model.message}")
        if model.order_id:
            print(f"   Order ID: {model.order_id}")
        buttons = ", ".join(button.text for button in model.buttons)
        if buttons:
            print(f"   Actions: {buttons}")


def sample_cart() -> CartStore:
    """A small cart of exam prep products."""
    return CartStore([
        LineItem(
            product_id="exam-ai-900",
            name="AI Fundamentals Practice Exam",
            subject_name="Artificial Intelligence",
            subject_code="AI-900",
            unit_price=Decimal("19.99"),
        ),
        LineItem(
            product_id="exam-dp-100",
            name="Data Science Practice Exam",
            subject_name="Data Science",
            subject_code="DP-100",
            unit_price=Decimal("5.00"),
        ),
    ])


async def run_checkout(
    settings: CheckoutSettings,
    scenario: PaymentScenario,
    fail_orders: int,
    retry: bool,
) -> int:
    """Run one checkout against the backend; returns a process exit code."""
    print_header("Storefront Checkout")

    cart = sample_cart()
    for item in cart.items:
        print(f"   - {item.name} ({item.subject_code}): ${item.unit_price}")
    print(f"   Total: ${cart.total}\n")

    async with StorefrontApiClient.from_settings(settings) as client:
        if fail_orders:
            try:
                await client.inject_order_failures(fail_orders)
            except ServiceError as e:
                print_error(f"Could not configure order failures: {e}")
                return 1
            print_info(f"Backend will reject the next {fail_orders} order(s)")

        orchestrator = CheckoutOrchestrator(
            cart=cart,
            intent_service=client,
            payment_gateway=SimulatedPaymentGateway(scenario),
            order_service=client,
            presenter=ConsoleAlertPresenter(),
            settings=settings,
        )

        print_info(f"Checking out with payment scenario '{scenario.value}'...")
        outcome = await orchestrator.checkout_from_cart()

        if isinstance(outcome, FailedOutcome) and outcome.can_retry_order and retry:
            print_info("Payment was captured; resubmitting the order with the same payment reference...")
            outcome = await orchestrator.retry_order(outcome)

    print()
    print_info(f"States: {' -> '.join(state.value for state in orchestrator.last_attempt.history)}")
    print_info(f"Items left in cart: {len(cart)}")
    return 0 if isinstance(outcome, CompletedOutcome) else 1


async def run_health_check(api_url: str) -> int:
    """Test the backend connection directly."""
    print_header("Backend Health Check")

    try:
        async with StorefrontApiClient(base_url=api_url, timeout=10.0) as client:
            status = await client.health()
    except ServiceError as e:
        print_error(f"Cannot reach storefront backend at {api_url}: {e}")
        print("[TIP] Make sure the server is running:")
        print("      python -m storefront_cli server")
        return 1

    print_success(f"{status.get('service', 'Backend')} is {status.get('status', 'unknown')}")
    return 0


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs")
def cli(verbose: bool):
    """Storefront Checkout CLI"""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@cli.command()
@click.option(
    "--scenario",
    type=click.Choice([scenario.value for scenario in PaymentScenario]),
    default=PaymentScenario.SUCCESS.value,
    help="How the simulated payment sheet responds",
)
@click.option("--fail-orders", default=0, type=click.IntRange(min=0), help="Reject the next N orders")
@click.option("--retry/--no-retry", default=True, help="Resubmit the order after OrderCommitFailed")
@click.option("--api-url", default=None, help="Backend URL (defaults to STOREFRONT_API_URL)")
def checkout(scenario: str, fail_orders: int, retry: bool, api_url: Optional[str]):
    """Run a checkout of a sample cart."""
    settings = CheckoutSettings.from_env()
    if api_url:
        settings = settings.model_copy(update={"api_url": api_url})
    try:
        code = asyncio.run(run_checkout(settings, PaymentScenario(scenario), fail_orders, retry))
    except httpx.HTTPError as e:
        print_error(str(e))
        code = 1
    sys.exit(code)


@cli.command()
@click.option("--api-url", default=None, help="Backend URL (defaults to STOREFRONT_API_URL)")
def health(api_url: Optional[str]):
    """Test the backend connection."""
    url = api_url or CheckoutSettings.from_env().api_url
    sys.exit(asyncio.run(run_health_check(url)))


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to STOREFRONT_HOST)")
@click.option("--port", default=None, type=int, help="Port (defaults to STOREFRONT_PORT)")
def server(host: Optional[str], port: Optional[int]):
    """Start the storefront backend."""
    from storefront.server import run_server

    logging.getLogger().setLevel(logging.INFO)
    print_header("Starting Storefront Backend")
    print("Press Ctrl+C to stop\n")
    run_server(host=host, port=port)


if __name__ == "__main__":
    cli()
