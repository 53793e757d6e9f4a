import asyncio
import logging
from enum import Enum
from typing import List, Optional, Tuple

from .errors import PaymentGatewayError
from .models import AuthorizationResult
from .services import PaymentGateway

logger = logging.getLogger(__name__)


class PaymentScenario(str, Enum):
    """How the simulated payment sheet behaves when presented."""
    SUCCESS = "success"
    DECLINE = "decline"
    CANCEL = "cancel"
    INIT_ERROR = "init-error"


DECLINED_MESSAGE = "Your card was declined."
CANCELED_MESSAGE = "The payment flow has been canceled"
INVALID_SECRET_MESSAGE = "Invalid PaymentIntent client secret"


class SimulatedPaymentGateway(PaymentGateway):
    """
    Stand-in for the client-side payment sheet.

    Mirrors the two-call contract of a real sheet: initialize() with the
    intent's client secret, then present() to collect the user's decision.
    The outcome is scripted by `scenario`; `delay` simulates the time the
    user spends on the sheet.
    """

    def __init__(self, scenario: PaymentScenario = PaymentScenario.SUCCESS, delay: float = 0.0):
        self.scenario = PaymentScenario(scenario)
        self.delay = delay
        self.calls: List[Tuple[str, Optional[str]]] = []
        self._client_secret: Optional[str] = None

    async def initialize(self, authorization_handle: str, merchant_display_name: str) -> AuthorizationResult:
        """Initialize the sheet for a client secret."""
        self.calls.append(("initialize", authorization_handle))
        self._client_secret = None

        if self.scenario is PaymentScenario.INIT_ERROR or "_secret_" not in (authorization_handle or ""):
            logger.info(f"Payment sheet rejected client secret for {merchant_display_name}")
            return AuthorizationResult.failed(INVALID_SECRET_MESSAGE)

        self._client_secret = authorization_handle
        return AuthorizationResult.ok()

    async def present(self) -> AuthorizationResult:
        """Present the sheet and return the scripted user decision."""
        self.calls.append(("present", self._client_secret))
        if self._client_secret is None:
            raise PaymentGatewayError("Payment sheet was not initialized")

        if self.delay:
            await asyncio.sleep(self.delay)

        # A sheet can only be confirmed once per client secret
        self._client_secret = None

        if self.scenario is PaymentScenario.DECLINE:
            return AuthorizationResult.failed(DECLINED_MESSAGE)
        if self.scenario is PaymentScenario.CANCEL:
            return AuthorizationResult.failed(CANCELED_MESSAGE)
        return AuthorizationResult.ok()
