"""
Payment method widget contract.

A widget owns the local state of one payment attempt for one method. It
validates input locally, turns it into a non-sensitive token and exchanges
the token for a result with a single call to the settlement endpoint. The
backend alone decides the payment state; the widget only relays it upward.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from ..models.payment_model import PaymentMethod, PaymentRequest, PaymentResult, PaymentToken
from ..models.widget_model import ValidationResult, WidgetView
from ..services.errors import BusinessError, SettlementError
from ..services.settlement_client import SettlementClient

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[PaymentResult], None]
ErrorCallback = Callable[[str], None]
ProcessingFlag = Callable[[], bool]


class PaymentMethodWidget(ABC):
    method: PaymentMethod
    fallback_error: str = "Payment failed"

    def __init__(self, client: SettlementClient, amount: float,
                 on_success: SuccessCallback,
                 on_error: Optional[ErrorCallback] = None,
                 processing: Optional[ProcessingFlag] = None):
        self.client = client
        self.amount = amount
        self.on_success = on_success
        self.on_error = on_error
        self.processing = processing or (lambda: False)

        self.in_flight = False
        self.completed = False
        self.error: Optional[str] = None
        self.result: Optional[PaymentResult] = None

    @property
    def busy(self) -> bool:
        """Interaction is blocked while the parent or this widget is busy"""
        return bool(self.processing()) or self.in_flight

    @abstractmethod
    def render(self, amount: float, processing: bool = False) -> WidgetView:
        """Describe the widget for display; must not change any state"""

    @abstractmethod
    def validate(self, local_input: Any) -> ValidationResult:
        """Check local input without touching the network"""

    @abstractmethod
    def tokenize(self, local_input: Any) -> PaymentToken:
        """Convert local input into a payload safe to transmit"""

    @abstractmethod
    def _build_result(self, data: Dict[str, Any]) -> PaymentResult:
        """Map the backend's response data to a PaymentResult"""

    def _transaction_id(self, data: Dict[str, Any]) -> str:
        transaction_id = data.get("transactionId")
        if not transaction_id:
            raise BusinessError("Payment response is missing a transaction id")
        return str(transaction_id)

    def _on_submit_success(self) -> None:
        """Hook for discarding local state after a successful exchange"""

    def submit(self, token: PaymentToken, amount: float) -> Optional[PaymentResult]:
        """
        Exchange a token for a payment result.

        Only one submission may be in flight, and none once a payment has
        succeeded until the parent calls reset(). Returns the result, or None
        when the submission was refused or failed; failures are reported
        through ``error`` and ``on_error``.
        """
        if self.completed:
            logger.warning(f"Ignoring {self.method.value} submission: payment already completed")
            return None
        if self.busy:
            logger.debug(f"Ignoring {self.method.value} submission: another submission is in flight")
            return None
        if token.method != self.method:
            raise ValueError(f"Token for {token.method.value} cannot be submitted by the {self.method.value} widget")
        if not amount or amount <= 0:
            self._fail("Invalid amount")
            return None

        self.in_flight = True
        self.error = None
        failure = None
        try:
            payment_request = PaymentRequest(
                method=self.method,
                amount=amount,
                payload=token.payload,
                idempotency_key=token.idempotency_key
            )
            data = self.client.create_payment(payment_request)
            result = self._build_result(data)
        except SettlementError as e:
            failure = e.message or self.fallback_error
        finally:
            self.in_flight = False

        if failure is not None:
            self._fail(failure)
            return None

        self.completed = True
        self.result = result
        self._on_submit_success()
        logger.info(f"{self.method.value} payment accepted: {result.transaction_id} ({result.status.value})")
        self.on_success(result)
        return result

    def _fail(self, message: str) -> None:
        self.error = message
        logger.warning(f"{self.method.value} payment failed: {message}")
        if self.on_error:
            self.on_error(message)

    def reset(self) -> None:
        """Allow a new attempt after a completed one"""
        self.completed = False
        self.result = None
        self.error = None
