"""
Payment Gateway

The ledger talks to payment providers only through PaymentGateway.
SimulatedPaymentGateway stands in for a real provider: it never moves money
and reports outcomes deterministically.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional
from uuid import uuid4

from ..config import PAYMENT_SIMULATED_OUTCOME

logger = logging.getLogger(__name__)


class PaymentOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PaymentIntent:
    """Provider-side record correlating a checkout with a ledger transaction."""
    ref: str
    client_secret: str
    amount_cents: int
    currency: str = "usd"


class PaymentGateway(ABC):

    @abstractmethod
    def create_intent(self, amount: Decimal) -> PaymentIntent:
        """Open a payment for `amount` and return its reference and client secret."""

    @abstractmethod
    def get_outcome(self, ref: str) -> PaymentOutcome:
        """Report whether the payment behind `ref` went through."""


class SimulatedPaymentGateway(PaymentGateway):
    """
    In-process gateway with no network calls.

    Every intent reports `default_outcome` unless a specific outcome has been
    recorded for its reference with set_outcome(). A recorded outcome is
    reported once and then forgotten.
    """

    def __init__(self, default_outcome: PaymentOutcome = PaymentOutcome.SUCCEEDED):
        self.default_outcome = PaymentOutcome(default_outcome)
        self._outcomes: Dict[str, PaymentOutcome] = {}

    def create_intent(self, amount: Decimal) -> PaymentIntent:
        ref = f"pi_sim_{uuid4().hex}"
        intent = PaymentIntent(
            ref=ref,
            client_secret=f"{ref}_secret_sim",
            amount_cents=int((Decimal(amount) * 100).to_integral_value()),
        )
        logger.debug(f"Simulated payment intent created: {ref} ({intent.amount_cents} cents)")
        return intent

    def get_outcome(self, ref: str) -> PaymentOutcome:
        return self._outcomes.pop(ref, self.default_outcome)

    def set_outcome(self, ref: str, outcome: PaymentOutcome) -> None:
        self._outcomes[ref] = PaymentOutcome(outcome)


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency - process-wide gateway instance."""
    global _gateway
    if _gateway is None:
        _gateway = SimulatedPaymentGateway(PaymentOutcome(PAYMENT_SIMULATED_OUTCOME))
    return _gateway
