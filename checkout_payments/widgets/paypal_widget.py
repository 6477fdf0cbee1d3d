import re
import logging
from enum import Enum
from typing import Any, Dict, Optional

from ..config.settings import settings
from ..models.payment_model import PaymentMethod, PaymentResult, PaymentStatus, PaymentToken
from ..models.widget_model import ActionView, FieldView, PayPalApprovalState, ValidationResult, WidgetView
from ..services.errors import LocalValidationError
from ..utils.helpers import generate_idempotency_key
from .base import PaymentMethodWidget

logger = logging.getLogger(__name__)

PAYPAL_ID_PATTERN = re.compile(r'^[A-Za-z0-9-]{1,64}$')


class PayPalWidgetState(str, Enum):
    AWAITING_APPROVAL = "awaiting_approval"
    CAPTURING = "capturing"
    SUCCESS = "success"


class PayPalPaymentWidget(PaymentMethodWidget):
    """
    Captures a PayPal order the buyer has already approved.

    Approval happens in PayPal's own window; this widget only receives the
    approved order and payer ids and asks the backend to capture them.
    """

    method = PaymentMethod.PAYPAL
    fallback_error = "PayPal payment failed"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.form = PayPalApprovalState()

    @property
    def state(self) -> PayPalWidgetState:
        if self.completed:
            return PayPalWidgetState.SUCCESS
        if self.in_flight:
            return PayPalWidgetState.CAPTURING
        return PayPalWidgetState.AWAITING_APPROVAL

    def update_field(self, name: str, value: str) -> bool:
        if name not in PayPalApprovalState.model_fields:
            raise ValueError(f"Unknown PayPal field: {name}")
        if self.busy or self.completed:
            return False

        setattr(self.form, name, (value or "").strip())
        self.error = None
        return True

    def approve(self, paypal_order_id: str, paypal_payer_id: Optional[str] = None) -> Optional[PaymentResult]:
        """Approval callback from PayPal checkout"""
        self.update_field("paypal_order_id", paypal_order_id)
        self.update_field("paypal_payer_id", paypal_payer_id or "")
        return self.pay()

    def validate(self, local_input: Optional[PayPalApprovalState] = None) -> ValidationResult:
        approval = self.form if local_input is None else local_input
        if not approval.paypal_order_id:
            return ValidationResult.failure("Approve the payment with PayPal first", "paypal_order_id")
        if not PAYPAL_ID_PATTERN.match(approval.paypal_order_id):
            return ValidationResult.failure("Invalid PayPal order", "paypal_order_id")
        if approval.paypal_payer_id and not PAYPAL_ID_PATTERN.match(approval.paypal_payer_id):
            return ValidationResult.failure("Invalid PayPal payer", "paypal_payer_id")
        return ValidationResult.success()

    def tokenize(self, local_input: Optional[PayPalApprovalState] = None) -> PaymentToken:
        approval = self.form if local_input is None else local_input
        validation = self.validate(approval)
        if not validation.ok:
            raise LocalValidationError(validation.reason, validation.field)

        payload = {"paypalOrderId": approval.paypal_order_id}
        if approval.paypal_payer_id:
            payload["paypalPayerId"] = approval.paypal_payer_id
        return PaymentToken(method=self.method, payload=payload, idempotency_key=generate_idempotency_key())

    def pay(self) -> Optional[PaymentResult]:
        if self.busy or self.completed:
            return None

        validation = self.validate()
        if not validation.ok:
            self.error = validation.reason
            return None

        logger.info(f"Capturing PayPal order {self.form.paypal_order_id}")
        return self.submit(self.tokenize(), self.amount)

    def _build_result(self, data: Dict[str, Any]) -> PaymentResult:
        return PaymentResult(
            method=self.method,
            transaction_id=self._transaction_id(data),
            status=PaymentStatus.COMPLETED
        )

    def _on_submit_success(self) -> None:
        self.form = PayPalApprovalState()

    def render(self, amount: float, processing: bool = False) -> WidgetView:
        disabled = processing or self.in_flight
        symbol = settings.CURRENCY_SYMBOL

        if self.completed:
            return WidgetView(
                method=self.method.value,
                title="PayPal",
                state=self.state.value,
                message=f"PayPal payment of {symbol}{amount:.0f} completed"
            )

        return WidgetView(
            method=self.method.value,
            title="PayPal",
            state=self.state.value,
            error=self.error,
            fields=[
                FieldView(name="paypal_order_id", label="PayPal Order ID", value=self.form.paypal_order_id,
                          placeholder="5O190127TN364715T", max_length=64, disabled=disabled),
                FieldView(name="paypal_payer_id", label="PayPal Payer ID", value=self.form.paypal_payer_id,
                          placeholder="FSMVU44LF3YUS", max_length=64, disabled=disabled),
            ],
            actions=[
                ActionView(
                    name="pay",
                    label="Processing..." if disabled else f"Pay {symbol}{amount:.0f} with PayPal",
                    disabled=disabled
                )
            ],
            notes=["You will be charged once PayPal confirms the approved order"]
        )
