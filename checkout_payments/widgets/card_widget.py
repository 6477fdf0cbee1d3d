import re
import logging
from enum import Enum
from typing import Any, Dict, Optional

from ..config.settings import settings
from ..models.payment_model import PaymentMethod, PaymentResult, PaymentStatus, PaymentToken
from ..models.widget_model import ActionView, CardFormState, FieldView, ValidationResult, WidgetView
from ..services.errors import LocalValidationError
from ..utils.helpers import (
    CARD_NUMBER_DIGITS,
    format_card_number,
    format_cvv,
    format_expiry_date,
    generate_card_token,
    generate_idempotency_key,
    mask_card_number,
    round_amount,
    sanitize_input,
    strip_card_separators,
)
from .base import PaymentMethodWidget

logger = logging.getLogger(__name__)

EXPIRY_PATTERN = re.compile(r'^\d{2}/\d{2}$')
CVV_PATTERN = re.compile(r'^\d{3,4}$')

_MASKS = {
    "card_name": lambda value: value,
    "card_number": format_card_number,
    "expiry_date": format_expiry_date,
    "cvv": format_cvv,
}


class CardWidgetState(str, Enum):
    EDITING = "editing"
    SUBMITTING = "submitting"
    SUCCESS = "success"


class CardPaymentWidget(PaymentMethodWidget):
    """Card payment form: editing -> submitting -> success, failures return to editing"""

    method = PaymentMethod.STRIPE
    fallback_error = "Stripe payment failed"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.form = CardFormState()

    @property
    def state(self) -> CardWidgetState:
        if self.completed:
            return CardWidgetState.SUCCESS
        if self.in_flight:
            return CardWidgetState.SUBMITTING
        return CardWidgetState.EDITING

    def update_field(self, name: str, value: str) -> bool:
        """Apply the field's input mask and store it; ignored while the form is disabled"""
        if name not in _MASKS:
            raise ValueError(f"Unknown card field: {name}")
        if self.busy or self.completed:
            return False

        setattr(self.form, name, _MASKS[name](value or ""))
        self.error = None
        return True

    def validate(self, local_input: Optional[CardFormState] = None) -> ValidationResult:
        form = self.form if local_input is None else local_input

        if not form.card_name.strip():
            return ValidationResult.failure("Cardholder name is required", "card_name")

        digits = strip_card_separators(form.card_number)
        if not digits.isdigit() or len(digits) != CARD_NUMBER_DIGITS:
            return ValidationResult.failure("Card number must be 16 digits", "card_number")

        if not EXPIRY_PATTERN.match(form.expiry_date or ""):
            return ValidationResult.failure("Expiry date must be MM/YY format", "expiry_date")

        if not CVV_PATTERN.match(form.cvv or ""):
            return ValidationResult.failure("CVV must be 3-4 digits", "cvv")

        return ValidationResult.success()

    def tokenize(self, local_input: Optional[CardFormState] = None) -> PaymentToken:
        """
        Replace the card details with a single-use token.

        Only the token and the cardholder name leave this method; the card
        number, expiry and CVV never do.
        """
        form = self.form if local_input is None else local_input
        validation = self.validate(form)
        if not validation.ok:
            raise LocalValidationError(validation.reason, validation.field)

        card_token = generate_card_token(strip_card_separators(form.card_number), form.expiry_date)
        return PaymentToken(
            method=self.method,
            payload={
                "paymentMethodId": card_token,
                "cardholderName": sanitize_input(form.card_name)
            },
            idempotency_key=generate_idempotency_key()
        )

    def submit(self, token: PaymentToken, amount: float) -> Optional[PaymentResult]:
        # Card charges are made in whole currency units
        return super().submit(token, round_amount(amount))

    def pay(self) -> Optional[PaymentResult]:
        """Form submit handler"""
        if self.busy or self.completed:
            return None

        validation = self.validate(self.form)
        if not validation.ok:
            self.error = validation.reason
            return None

        logger.info(f"Paying with card {mask_card_number(self.form.card_number)}")
        return self.submit(self.tokenize(self.form), self.amount)

    def _build_result(self, data: Dict[str, Any]) -> PaymentResult:
        return PaymentResult(
            method=self.method,
            transaction_id=self._transaction_id(data),
            status=PaymentStatus.COMPLETED
        )

    def _on_submit_success(self) -> None:
        # Drop the card details as soon as the backend has accepted the token
        self.form = CardFormState()

    def render(self, amount: float, processing: bool = False) -> WidgetView:
        disabled = processing or self.in_flight
        symbol = settings.CURRENCY_SYMBOL

        if self.completed:
            return WidgetView(
                method=self.method.value,
                title="Stripe Card Payment",
                state=self.state.value,
                message=f"Payment of {symbol}{amount:.0f} completed",
                notes=["Your payment is secure and PCI compliant"]
            )

        return WidgetView(
            method=self.method.value,
            title="Stripe Card Payment",
            state=self.state.value,
            error=self.error,
            fields=[
                FieldView(name="card_name", label="Cardholder Name", value=self.form.card_name,
                          placeholder="John Doe", disabled=disabled),
                FieldView(name="card_number", label="Card Number", value=self.form.card_number,
                          placeholder="1234 5678 9012 3456", max_length=19, disabled=disabled),
                FieldView(name="expiry_date", label="Expiry Date", value=self.form.expiry_date,
                          placeholder="MM/YY", max_length=5, disabled=disabled),
                FieldView(name="cvv", label="CVV", value=self.form.cvv,
                          placeholder="123", max_length=4, disabled=disabled),
            ],
            actions=[
                ActionView(
                    name="pay",
                    label="Processing Payment..." if disabled else f"Pay {symbol}{amount:.0f} with Stripe",
                    disabled=disabled
                )
            ],
            notes=["Your payment is secure and PCI compliant"]
        )
