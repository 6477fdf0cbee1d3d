import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..config.settings import settings
from ..models.payment_model import PaymentMethod, PaymentResult, PaymentStatus, PaymentToken
from ..models.widget_model import ActionView, QRSessionState, ValidationResult, WidgetView
from ..services.errors import LocalValidationError
from ..services.promptpay_service import PromptPayService
from ..utils.helpers import generate_client_reference, generate_idempotency_key
from .base import PaymentMethodWidget

logger = logging.getLogger(__name__)


class PromptPayWidgetState(str, Enum):
    IDLE = "idle"
    QR_GENERATED = "qr_generated"
    CONFIRMING = "confirming"
    VERIFIED = "verified"


class PromptPayWidget(PaymentMethodWidget):
    """
    QR transfer payment.

    The customer generates a PromptPay QR code, pays it from a banking app
    and then tells us the transfer is done. The backend only records the
    claim, so a successful confirmation is ``pending-verification``, never
    ``completed``.

    The QR validity window is advisory: the view reports expiry but a late
    confirmation is still sent, and the backend decides what to do with it.
    """

    method = PaymentMethod.PROMPTPAY
    fallback_error = "PromptPay payment failed"

    def __init__(self, *args, promptpay_service: Optional[PromptPayService] = None,
                 validity_minutes: Optional[int] = None,
                 clock: Optional[Callable[[], datetime]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.promptpay = promptpay_service or PromptPayService()
        self.validity = timedelta(minutes=validity_minutes or settings.PROMPTPAY_QR_VALIDITY_MINUTES)
        self.clock = clock or datetime.now
        self.session = QRSessionState()

    @property
    def receiver_id(self) -> str:
        return self.promptpay.receiver_id

    @property
    def state(self) -> PromptPayWidgetState:
        if self.completed:
            return PromptPayWidgetState.VERIFIED
        if self.in_flight:
            return PromptPayWidgetState.CONFIRMING
        if self.session.displayed:
            return PromptPayWidgetState.QR_GENERATED
        return PromptPayWidgetState.IDLE

    def generate_qr(self) -> bool:
        """Build and display the payment QR; replaces any QR shown before"""
        if self.busy or self.completed:
            return False

        try:
            payment_string = self.promptpay.build_payment_string(self.amount)
            qr_image = self.promptpay.generate_qr_code(payment_string)
        except Exception as e:
            logger.error(f"Failed to generate PromptPay QR code: {e}")
            self.error = "Failed to generate QR code"
            if self.on_error:
                self.on_error("QR code generation failed")
            return False

        generated_at = self.clock()
        self.session = QRSessionState(
            payment_string=payment_string,
            qr_image=qr_image,
            displayed=True,
            generated_at=generated_at,
            expires_at=generated_at + self.validity
        )
        self.error = None
        logger.info(f"PromptPay QR generated for {self.amount:.2f}, valid until {self.session.expires_at}")
        return True

    def back(self) -> bool:
        """Leave the QR screen and discard the generated payment string"""
        if self.busy or self.state != PromptPayWidgetState.QR_GENERATED:
            return False
        self.session = QRSessionState()
        self.error = None
        return True

    def is_expired(self) -> bool:
        expires_at = self.session.expires_at
        return expires_at is not None and self.clock() >= expires_at

    def validate(self, local_input: Optional[QRSessionState] = None) -> ValidationResult:
        session = self.session if local_input is None else local_input
        if not session.displayed or not session.payment_string:
            return ValidationResult.failure("Generate the PromptPay QR code first", "payment_string")
        if not self.promptpay.verify_payment_string(session.payment_string):
            return ValidationResult.failure("PromptPay QR code is invalid, please generate a new one", "payment_string")
        return ValidationResult.success()

    def tokenize(self, local_input: Optional[QRSessionState] = None) -> PaymentToken:
        """A fresh client reference per confirmation attempt, plus the receiver id"""
        validation = self.validate(local_input)
        if not validation.ok:
            raise LocalValidationError(validation.reason, validation.field)

        return PaymentToken(
            method=self.method,
            payload={
                "phone": self.receiver_id,
                "reference": generate_client_reference()
            },
            idempotency_key=generate_idempotency_key()
        )

    def confirm(self) -> Optional[PaymentResult]:
        """The customer says the transfer is done"""
        if self.busy or self.completed:
            return None

        validation = self.validate()
        if not validation.ok:
            self.error = validation.reason
            return None

        if self.is_expired():
            logger.warning(f"PromptPay QR expired at {self.session.expires_at}, confirming anyway")

        token = self.tokenize()
        self.session.client_reference = token.payload["reference"]
        return self.submit(token, self.amount)

    def _build_result(self, data: Dict[str, Any]) -> PaymentResult:
        return PaymentResult(
            method=self.method,
            transaction_id=self._transaction_id(data),
            status=PaymentStatus.PENDING_VERIFICATION,
            reference=data.get("reference") or self.session.client_reference
        )

    def _on_submit_success(self) -> None:
        # Only the reference outlives a successful confirmation
        self.session = QRSessionState(confirmed=True, client_reference=self.session.client_reference)

    def render(self, amount: float, processing: bool = False) -> WidgetView:
        disabled = processing or self.in_flight
        symbol = settings.CURRENCY_SYMBOL
        state = self.state

        if state == PromptPayWidgetState.VERIFIED:
            return WidgetView(
                method=self.method.value,
                title="Payment Request Sent",
                state=state.value,
                message=(
                    "PromptPay payment request has been submitted. "
                    "Your order status will update once payment is verified."
                ),
                notes=[
                    f"Amount: {symbol}{amount:.0f}",
                    f"Receiver: PromptPay ID: {self.receiver_id}"
                ]
            )

        if state == PromptPayWidgetState.IDLE:
            return WidgetView(
                method=self.method.value,
                title="PromptPay Payment (Thailand)",
                state=state.value,
                error=self.error,
                actions=[
                    ActionView(
                        name="generate_qr",
                        label="Generating QR Code..." if disabled else "Generate PromptPay QR Code",
                        disabled=disabled
                    )
                ],
                notes=[
                    'Click "Generate QR Code" below',
                    "Open your banking app and choose PromptPay or Transfer by QR Code",
                    "Scan the generated QR code",
                    f"Confirm payment amount: {symbol}{amount:.0f}",
                    "Complete the transaction",
                ]
            )

        minutes = int(self.validity.total_seconds() // 60)
        return WidgetView(
            method=self.method.value,
            title="PromptPay Payment (Thailand)",
            state=state.value,
            error=self.error,
            qr_image=self.session.qr_image,
            expires_at=self.session.expires_at,
            expired=self.is_expired(),
            actions=[
                ActionView(
                    name="confirm",
                    label="Processing..." if disabled else "I have completed the payment",
                    disabled=disabled
                ),
                ActionView(name="back", label="Back", disabled=disabled),
            ],
            notes=[
                f"Valid for {minutes} minutes",
                f"Amount: {symbol}{amount:.0f}",
                f"Or transfer manually to PromptPay ID: {self.receiver_id}",
            ]
        )
