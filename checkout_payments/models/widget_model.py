from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class ValidationResult(BaseModel):
    ok: bool
    reason: Optional[str] = None
    field: Optional[str] = None

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str, field: Optional[str] = None) -> "ValidationResult":
        return cls(ok=False, reason=reason, field=field)

class CardFormState(BaseModel):
    """Local card form input. Only ever held in memory by the card widget."""
    card_name: str = ""
    card_number: str = ""  # Formatted for display, e.g. "4242 4242 4242 4242"
    expiry_date: str = ""  # MM/YY
    cvv: str = ""

class PayPalApprovalState(BaseModel):
    """Ids PayPal hands back after the buyer approves the order"""
    paypal_order_id: str = ""
    paypal_payer_id: str = ""

class QRSessionState(BaseModel):
    """Local state of a QR transfer attempt"""
    payment_string: Optional[str] = None
    qr_image: Optional[str] = None  # data:image/png;base64,...
    displayed: bool = False
    generated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    confirmed: bool = False
    client_reference: Optional[str] = None

class FieldView(BaseModel):
    name: str
    label: str
    value: str = ""
    placeholder: str = ""
    max_length: Optional[int] = None
    disabled: bool = False

class ActionView(BaseModel):
    name: str
    label: str
    disabled: bool = False

class WidgetView(BaseModel):
    """Render output of a payment widget, consumed by the checkout page"""
    method: str
    title: str
    state: str
    error: Optional[str] = None
    message: Optional[str] = None
    fields: List[FieldView] = Field(default_factory=list)
    actions: List[ActionView] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    qr_image: Optional[str] = None
    expires_at: Optional[datetime] = None
    expired: bool = False
