"""Error taxonomy shared by the widgets, the orchestrator and the settlement client."""

from typing import Optional


class CheckoutError(Exception):
    """Base class for checkout payment errors"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "")
        self.message = message


class LocalValidationError(CheckoutError):
    """Input rejected locally; never reaches the network"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class SettlementError(CheckoutError):
    """The settlement endpoint could not produce a successful result"""


class TransportError(SettlementError):
    """Network failure or timeout talking to the settlement endpoint"""


class BusinessError(SettlementError):
    """The backend answered, but with a non-success response"""

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
