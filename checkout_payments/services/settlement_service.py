import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..config.settings import settings
from ..database.db import DatabaseManager, db_instance
from ..models.payment_model import PaymentMethod, PaymentStatus
from ..utils.helpers import generate_transaction_id

logger = logging.getLogger(__name__)

# Ledger statuses that mean the money has moved
SETTLED_STATUSES = ('succeeded', PaymentStatus.COMPLETED.value)


class OrderNotFoundError(LookupError):
    pass


class OrderAccessError(PermissionError):
    pass


class SettlementService:
    """Sandbox settlement: simulates provider charges and records them in the ledger"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_instance

    def _replay(self, method: PaymentMethod, idempotency_key: Optional[str]) -> Optional[Dict[str, Any]]:
        if not idempotency_key:
            return None
        existing = self.db.get_transaction_by_idempotency_key(method.value, idempotency_key)
        if existing:
            logger.info(f"Replaying {method.value} transaction {existing['transaction_id']} for repeated request")
            return existing['response_data']
        return None

    def _record(self, method: PaymentMethod, amount: float, status: str, data: Dict[str, Any],
                reference: Optional[str] = None, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        saved = self.db.save_transaction({
            'transaction_id': data['transactionId'],
            'method': method.value,
            'amount': amount,
            'currency': settings.PAYMENT_CURRENCY,
            'status': status,
            'reference': reference,
            'idempotency_key': idempotency_key,
            'response_data': data
        })
        if not saved:
            raise RuntimeError("Failed to record transaction")
        return data

    def charge_card(self, amount: Optional[float], payment_method_id: Optional[str],
                    cardholder_name: Optional[str] = None,
                    idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        """Charge a tokenized card"""
        if not amount or amount <= 0:
            raise ValueError("Invalid amount")
        if not payment_method_id:
            raise ValueError("Payment method is required")

        replayed = self._replay(PaymentMethod.STRIPE, idempotency_key)
        if replayed:
            return replayed

        # Sandbox: every tokenized card succeeds
        data = {
            'transactionId': generate_transaction_id("ch"),
            'status': 'succeeded',
            'amount': amount,
            'currency': settings.PAYMENT_CURRENCY.lower(),
            'method': PaymentMethod.STRIPE.value,
            'timestamp': datetime.now().isoformat()
        }
        logger.info(f"Card charge {data['transactionId']} for {amount} ({cardholder_name or 'unnamed cardholder'})")
        return self._record(PaymentMethod.STRIPE, amount, 'succeeded', data,
                            idempotency_key=idempotency_key)

    def charge_paypal(self, paypal_order_id: Optional[str], amount: Optional[float],
                      paypal_payer_id: Optional[str] = None,
                      idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        """Capture an approved PayPal order"""
        if not paypal_order_id or not amount:
            raise ValueError("Invalid PayPal order")

        replayed = self._replay(PaymentMethod.PAYPAL, idempotency_key)
        if replayed:
            return replayed

        # A PayPal order can only be captured once
        captured = self.db.get_transaction(paypal_order_id)
        if captured:
            if captured['method'] != PaymentMethod.PAYPAL.value:
                raise ValueError("Invalid PayPal order")
            return captured['response_data']

        data = {
            'transactionId': paypal_order_id,
            'paypalOrderId': paypal_order_id,
            'paypalPayerId': paypal_payer_id,
            'status': PaymentStatus.COMPLETED.value,
            'amount': amount,
            'method': PaymentMethod.PAYPAL.value
        }
        return self._record(PaymentMethod.PAYPAL, amount, PaymentStatus.COMPLETED.value, data,
                            idempotency_key=idempotency_key)

    def create_promptpay(self, amount: Optional[float], phone: Optional[str],
                         reference: Optional[str] = None,
                         idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        """Record a claimed PromptPay transfer, pending bank verification"""
        if not amount or not phone:
            raise ValueError("Invalid PromptPay payment details")

        replayed = self._replay(PaymentMethod.PROMPTPAY, idempotency_key)
        if replayed:
            return replayed

        now = datetime.now()
        data = {
            'transactionId': f"PP_{int(now.timestamp() * 1000)}_{reference or ''}",
            'phone': phone,
            'reference': reference,
            'amount': amount,
            'status': 'pending',
            'method': PaymentMethod.PROMPTPAY.value,
            'expiresAt': (now + timedelta(minutes=settings.PROMPTPAY_QR_VALIDITY_MINUTES)).isoformat()
        }
        return self._record(PaymentMethod.PROMPTPAY, amount, 'pending', data,
                            reference=reference, idempotency_key=idempotency_key)

    def _get_owned_order(self, order_id: str, user_id: str) -> Dict[str, Any]:
        order = self.db.get_order(order_id)
        if not order:
            raise OrderNotFoundError("Order not found")
        if order['user_id'] != user_id:
            raise OrderAccessError("Unauthorized")
        return order

    def confirm_payment(self, order_id: str, user_id: str, payment_method: PaymentMethod,
                        payment_details: Dict[str, Any], amount: Optional[float]) -> Dict[str, Any]:
        """
        Attach a payment to an order.

        Whether the payment is completed comes from the ledger, never from
        the client. Bank transfers have no ledger entry and always stay
        pending until someone checks the account.
        """
        self._get_owned_order(order_id, user_id)

        transaction_id = payment_details.get('transactionId')
        if payment_method == PaymentMethod.BANK_TRANSFER:
            completed = False
        else:
            transaction = self.db.get_transaction(transaction_id) if transaction_id else {}
            if not transaction:
                raise ValueError("Unknown transaction")
            if transaction['method'] != payment_method.value:
                raise ValueError("Transaction does not match payment method")
            completed = transaction['status'] in SETTLED_STATUSES

        details = {
            'method': payment_method.value,
            'transactionId': transaction_id,
            'reference': payment_details.get('reference'),
            'status': PaymentStatus.COMPLETED.value if completed else PaymentStatus.PENDING_VERIFICATION.value,
            'timestamp': datetime.now().isoformat(),
            'amount': amount
        }
        updated = self.db.update_order_payment(
            order_id,
            payment_method=payment_method.value,
            payment_status=PaymentStatus.COMPLETED.value if completed else 'pending',
            payment_details=details,
            status='processing' if completed else None
        )
        if not updated:
            raise RuntimeError("Failed to update order")
        return self.db.get_order(order_id)

    def get_payment_status(self, order_id: str, user_id: str) -> Dict[str, Any]:
        order = self._get_owned_order(order_id, user_id)
        return {
            'orderId': order['order_id'],
            'status': order['status'],
            'paymentStatus': order['payment_status'],
            'paymentMethod': order['payment_method'],
            'amount': order['total'],
            'timestamp': order['created_at']
        }

    def seed_demo_order(self) -> None:
        """Make sure the demo checkout has an order to pay for"""
        user_id = next(iter(settings.get_api_tokens().values()), None)
        if not user_id:
            logger.warning("No API tokens configured - demo order not created")
            return
        self.db.save_order({
            'order_id': settings.DEMO_ORDER_ID,
            'user_id': user_id,
            'total': settings.DEMO_ORDER_TOTAL
        })

# Global service instance
settlement_service = SettlementService()
