import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from ..models.payment_model import (
    CardChargeRequest,
    ConfirmPaymentRequest,
    PayPalChargeRequest,
    PromptPayChargeRequest,
)
from ..services.settlement_service import OrderAccessError, OrderNotFoundError, settlement_service
from .dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})

@router.post("/stripe")
async def stripe_payment(charge: CardChargeRequest,
                         user_id: str = Depends(get_current_user),
                         idempotency_key: Optional[str] = Header(None)):
    """Charge a tokenized card"""
    try:
        data = settlement_service.charge_card(
            amount=charge.amount,
            payment_method_id=charge.payment_method_id,
            cardholder_name=charge.cardholder_name,
            idempotency_key=idempotency_key
        )
        return {"success": True, "data": data}
    except ValueError as e:
        logger.warning(f"Rejected card payment for {user_id}: {e}")
        return error_response(400, str(e))
    except Exception as e:
        logger.error(f"Card payment failed for {user_id}: {e}")
        return error_response(400, "Stripe payment failed")

@router.post("/paypal")
async def paypal_payment(charge: PayPalChargeRequest,
                         user_id: str = Depends(get_current_user),
                         idempotency_key: Optional[str] = Header(None)):
    """Capture a PayPal order"""
    try:
        data = settlement_service.charge_paypal(
            paypal_order_id=charge.paypal_order_id,
            amount=charge.amount,
            paypal_payer_id=charge.paypal_payer_id,
            idempotency_key=idempotency_key
        )
        return {"success": True, "data": data}
    except ValueError as e:
        logger.warning(f"Rejected PayPal payment for {user_id}: {e}")
        return error_response(400, str(e))
    except Exception as e:
        logger.error(f"PayPal payment failed for {user_id}: {e}")
        return error_response(400, "PayPal payment failed")

@router.post("/promptpay")
async def promptpay_payment(charge: PromptPayChargeRequest,
                            user_id: str = Depends(get_current_user),
                            idempotency_key: Optional[str] = Header(None)):
    """Record a PromptPay transfer; it stays pending until the bank confirms it"""
    try:
        data = settlement_service.create_promptpay(
            amount=charge.amount,
            phone=charge.phone,
            reference=charge.reference,
            idempotency_key=idempotency_key
        )
        return {"success": True, "data": data}
    except ValueError as e:
        logger.warning(f"Rejected PromptPay payment for {user_id}: {e}")
        return error_response(400, str(e))
    except Exception as e:
        logger.error(f"PromptPay payment failed for {user_id}: {e}")
        return error_response(400, "PromptPay payment failed")

@router.post("/confirm")
async def confirm_payment(confirmation: ConfirmPaymentRequest,
                          user_id: str = Depends(get_current_user)):
    """Confirm payment and update order"""
    try:
        order = settlement_service.confirm_payment(
            order_id=confirmation.order_id,
            user_id=user_id,
            payment_method=confirmation.payment_method,
            payment_details=confirmation.payment_details,
            amount=confirmation.amount
        )
        return {"success": True, "data": order, "message": "Payment confirmed successfully"}
    except OrderNotFoundError as e:
        return error_response(404, str(e))
    except OrderAccessError as e:
        logger.warning(f"User {user_id} tried to confirm payment for order {confirmation.order_id}")
        return error_response(403, str(e))
    except ValueError as e:
        logger.warning(f"Rejected confirmation for order {confirmation.order_id}: {e}")
        return error_response(400, str(e))
    except Exception as e:
        logger.error(f"Payment confirmation failed for order {confirmation.order_id}: {e}")
        return error_response(400, "Payment confirmation failed")

@router.get("/{order_id}/status")
async def get_payment_status(order_id: str, user_id: str = Depends(get_current_user)):
    """Get payment status"""
    try:
        return {"success": True, "data": settlement_service.get_payment_status(order_id, user_id)}
    except OrderNotFoundError as e:
        return error_response(404, str(e))
    except OrderAccessError as e:
        return error_response(403, str(e))
    except Exception as e:
        logger.error(f"Error retrieving payment status for order {order_id}: {e}")
        return error_response(500, "Failed to retrieve payment status")
