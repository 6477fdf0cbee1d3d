import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type

from ..config.settings import settings
from ..models.payment_model import PaymentMethod, PaymentResult, PaymentStatus
from ..utils.helpers import generate_client_reference
from ..widgets.base import PaymentMethodWidget
from ..widgets.card_widget import CardPaymentWidget
from ..widgets.paypal_widget import PayPalPaymentWidget
from ..widgets.promptpay_widget import PromptPayWidget
from .errors import SettlementError
from .settlement_client import SettlementClient

logger = logging.getLogger(__name__)

WIDGETS: Dict[PaymentMethod, Type[PaymentMethodWidget]] = {
    PaymentMethod.STRIPE: CardPaymentWidget,
    PaymentMethod.PAYPAL: PayPalPaymentWidget,
    PaymentMethod.PROMPTPAY: PromptPayWidget,
}

PAYMENT_METHODS = [
    {
        "id": PaymentMethod.STRIPE.value,
        "name": "Stripe Card",
        "description": "Credit/Debit Card (Visa, Mastercard)"
    },
    {
        "id": PaymentMethod.PAYPAL.value,
        "name": "PayPal",
        "description": "Fast and secure PayPal checkout"
    },
    {
        "id": PaymentMethod.PROMPTPAY.value,
        "name": "PromptPay",
        "description": "Thailand mobile payment (QR Code)"
    },
    {
        "id": PaymentMethod.BANK_TRANSFER.value,
        "name": "Bank Transfer",
        "description": "Direct bank transfer"
    },
]


class OrderPaymentState(str, Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    AWAITING_VERIFICATION = "awaiting_verification"
    PAID = "paid"


class CheckoutOrchestrator:
    """
    Drives one checkout attempt: picks the payment method, hands the amount
    to its widget and records whatever the widget reports with the backend.

    ``processing`` is the one busy flag for the whole checkout. Widgets read
    it through their ``processing`` prop, and it includes the active widget's
    own in-flight submission.
    """

    def __init__(self, client: SettlementClient, order_id: str, total: float,
                 on_complete: Optional[Callable[[Dict[str, Any]], None]] = None,
                 on_error: Optional[Callable[[str], None]] = None,
                 default_method: PaymentMethod = PaymentMethod.STRIPE):
        self.client = client
        self.order_id = order_id
        self.total = total
        self.on_complete = on_complete
        self.on_error = on_error

        self.order_state = OrderPaymentState.AWAITING_PAYMENT
        self.error: Optional[str] = None
        self.last_result: Optional[PaymentResult] = None
        # Set when a payment went through but the order has not recorded it
        self.unconfirmed_result: Optional[PaymentResult] = None
        self.order: Optional[Dict[str, Any]] = None
        self._confirming = False

        self.selected_method: Optional[PaymentMethod] = None
        self.widget: Optional[PaymentMethodWidget] = None
        self.select(default_method)

    @property
    def processing(self) -> bool:
        return self._confirming or bool(self.widget and self.widget.in_flight)

    @property
    def fulfillment_allowed(self) -> bool:
        """Only a settled payment releases the order for fulfillment"""
        return self.order_state == OrderPaymentState.PAID

    def select(self, method: PaymentMethod) -> Optional[PaymentMethodWidget]:
        """Switch payment method; the previous method's local state is discarded"""
        method = PaymentMethod(method)
        if self.processing:
            logger.debug(f"Ignoring switch to {method.value} while a payment is processing")
            return self.widget
        if self.unconfirmed_result is not None:
            logger.warning(f"Ignoring switch to {method.value}: payment {self.unconfirmed_result.transaction_id} is not recorded yet")
            return self.widget
        if method == self.selected_method:
            return self.widget

        self.selected_method = method
        self.error = None
        widget_class = WIDGETS.get(method)
        if widget_class is None:
            # Offline methods have no widget; see confirm_bank_transfer()
            self.widget = None
        else:
            self.widget = widget_class(
                self.client,
                self.total,
                on_success=self._handle_payment_success,
                on_error=self._handle_payment_error,
                processing=lambda: self._confirming
            )
        return self.widget

    def render(self):
        """View of the active widget, rendered with the checkout's busy flag"""
        if self.widget is None:
            return None
        return self.widget.render(self.total, processing=self.processing)

    def confirm_bank_transfer(self) -> Optional[Dict[str, Any]]:
        """Customer says the bank transfer has been made"""
        if self.selected_method != PaymentMethod.BANK_TRANSFER or self.processing:
            return None
        if self.unconfirmed_result is not None:
            return None

        reference = generate_client_reference()
        result = PaymentResult(
            method=PaymentMethod.BANK_TRANSFER,
            transaction_id=f"BT_{reference}",
            status=PaymentStatus.PENDING_VERIFICATION,
            reference=reference
        )
        return self._handle_payment_success(result)

    def retry_confirmation(self) -> Optional[Dict[str, Any]]:
        """
        Record a payment that went through but could not be attached to the
        order. The same result is sent again; nothing is charged twice.
        """
        if self.unconfirmed_result is None or self.processing:
            return None
        logger.info(f"Retrying confirmation of {self.unconfirmed_result.transaction_id} for order {self.order_id}")
        return self._handle_payment_success(self.unconfirmed_result)

    def _handle_payment_success(self, result: PaymentResult) -> Optional[Dict[str, Any]]:
        self.last_result = result
        self._confirming = True
        self.error = None
        try:
            order = self.client.confirm_payment(self.order_id, result.method, result, self.total)
        except SettlementError as e:
            self.unconfirmed_result = result
            self._handle_payment_error(e.message or "Payment processing failed")
            return None
        finally:
            self._confirming = False

        self.unconfirmed_result = None
        self.order = order
        if result.status == PaymentStatus.COMPLETED:
            self.order_state = OrderPaymentState.PAID
        else:
            self.order_state = OrderPaymentState.AWAITING_VERIFICATION
        logger.info(f"Order {self.order_id} payment recorded: {result.method.value} {result.status.value}")

        if self.on_complete:
            self.on_complete(order)
        return order

    def _handle_payment_error(self, message: str) -> None:
        self.error = message
        logger.warning(f"Checkout for order {self.order_id} failed: {message}")
        if self.on_error:
            self.on_error(message)

    def refresh_status(self) -> OrderPaymentState:
        """Ask the backend whether a pending payment has been verified"""
        try:
            status = self.client.get_payment_status(self.order_id)
        except SettlementError as e:
            self._handle_payment_error(e.message or "Could not load payment status")
            return self.order_state

        if status.get("paymentStatus") == PaymentStatus.COMPLETED.value:
            self.order_state = OrderPaymentState.PAID
        return self.order_state

    def summary(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "amount": self.total,
            "display_amount": f"{settings.CURRENCY_SYMBOL}{self.total:.0f}",
            "currency": settings.PAYMENT_CURRENCY,
            "methods": PAYMENT_METHODS,
            "selected_method": self.selected_method.value if self.selected_method else None,
            "order_state": self.order_state.value,
            "bank_details": settings.get_bank_details()
        }
