from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from enum import Enum

class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    PROMPTPAY = "promptpay"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank-transfer"

class PaymentStatus(str, Enum):
    COMPLETED = "completed"
    PENDING_VERIFICATION = "pending-verification"
    FAILED = "failed"

class PaymentToken(BaseModel):
    """Non-sensitive, method-specific payload produced by a widget's tokenize step"""
    method: PaymentMethod
    payload: Dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str

class PaymentRequest(BaseModel):
    """What actually goes over the wire to the settlement endpoint"""
    method: PaymentMethod
    amount: float = Field(..., gt=0)
    payload: Dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str

    def to_body(self) -> Dict[str, Any]:
        body = dict(self.payload)
        body["amount"] = self.amount
        return body

class PaymentResult(BaseModel):
    """Outcome of a payment as reported by the backend"""
    method: PaymentMethod
    transaction_id: str
    status: PaymentStatus
    reference: Optional[str] = None

    def to_details(self) -> Dict[str, Any]:
        """Camel-cased form expected by /payments/confirm"""
        details = {
            "method": self.method.value,
            "transactionId": self.transaction_id,
            "status": self.status.value
        }
        if self.reference:
            details["reference"] = self.reference
        return details

# Sandbox settlement API request bodies. Fields are optional so the routes can
# answer with the same messages the storefront backend uses.

class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

class CardChargeRequest(_WireModel):
    amount: Optional[float] = None
    payment_method_id: Optional[str] = Field(None, alias="paymentMethodId")
    cardholder_name: Optional[str] = Field(None, alias="cardholderName")

class PromptPayChargeRequest(_WireModel):
    amount: Optional[float] = None
    phone: Optional[str] = None
    reference: Optional[str] = None

class PayPalChargeRequest(_WireModel):
    paypal_order_id: Optional[str] = Field(None, alias="paypalOrderId")
    paypal_payer_id: Optional[str] = Field(None, alias="paypalPayerId")
    amount: Optional[float] = None

class ConfirmPaymentRequest(_WireModel):
    order_id: str = Field(..., alias="orderId")
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    payment_details: Dict[str, Any] = Field(default_factory=dict, alias="paymentDetails")
    amount: Optional[float] = None
