import logging
from typing import Any, Callable, Dict, Optional

import requests

from ..config.settings import settings
from ..models.payment_model import PaymentMethod, PaymentRequest, PaymentResult
from .errors import BusinessError, TransportError

logger = logging.getLogger(__name__)

AuthTokenProvider = Callable[[], Optional[str]]


class SettlementClient:
    """Client for the backend settlement endpoints.

    The bearer token is looked up through ``auth_token_provider`` on every
    request so callers decide where it lives. Every request carries a bounded
    timeout.
    """

    def __init__(self, base_url: Optional[str] = None,
                 auth_token_provider: Optional[AuthTokenProvider] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.auth_token_provider = auth_token_provider
        self.timeout = timeout if timeout is not None else settings.SETTLEMENT_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.auth_token_provider() if self.auth_token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                 idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=body,
                headers=self._headers(idempotency_key),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            logger.warning(f"Settlement request timed out: {method} {path}")
            raise TransportError("Payment request timed out. Please try again.") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Settlement request failed: {method} {path} - {e}")
            raise TransportError("Could not reach the payment service. Please try again.") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if not 200 <= response.status_code < 300 or not payload.get("success"):
            message = payload.get("message")
            logger.warning(f"Settlement request rejected: {method} {path} - Status: {response.status_code} - {message}")
            raise BusinessError(message, status_code=response.status_code)

        return payload.get("data") or {}

    def create_payment(self, payment_request: PaymentRequest) -> Dict[str, Any]:
        """POST /payments/{method}; returns the response's ``data`` object"""
        logger.info(f"Submitting {payment_request.method.value} payment of {payment_request.amount}")
        return self._request(
            "POST",
            f"/payments/{payment_request.method.value}",
            body=payment_request.to_body(),
            idempotency_key=payment_request.idempotency_key
        )

    def confirm_payment(self, order_id: str, payment_method: PaymentMethod,
                        result: PaymentResult, amount: float) -> Dict[str, Any]:
        """POST /payments/confirm; records a payment result on the order"""
        return self._request(
            "POST",
            "/payments/confirm",
            body={
                "orderId": order_id,
                "paymentMethod": payment_method.value,
                "paymentDetails": result.to_details(),
                "amount": amount
            }
        )

    def get_payment_status(self, order_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/payments/{order_id}/status")
