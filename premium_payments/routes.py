import logging
from typing import Optional
import stripe
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from premium_payments.auth import get_current_user, require_admin
from premium_payments.dependencies import get_engine, get_provider, get_store
from premium_payments.errors import AccountUnresolvable, StoreFailure
from premium_payments.reconciliation import Outcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["payment"])


class CheckoutRequest(BaseModel):
    successUrl: Optional[str] = None
    cancelUrl: Optional[str] = None


class VerifySessionRequest(BaseModel):
    sessionId: Optional[str] = None


def _summary(payment):
    if payment is None:
        return None
    return {
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "paymentDate": payment.payment_date.isoformat() if payment.payment_date else None,
    }


def _history_row(payment):
    return {
        "id": payment.id,
        "stripeSessionId": payment.stripe_session_id,
        "stripePaymentIntentId": payment.stripe_payment_intent_id,
        "email": payment.email,
        "paymentMethod": payment.payment_method,
        "customerName": payment.customer_name,
        "createdAt": payment.created_at.isoformat() if payment.created_at else None,
        **_summary(payment),
    }


@router.post("/create-checkout-session")
def create_checkout_session(
    request: Optional[CheckoutRequest] = None,
    user=Depends(get_current_user),
    provider=Depends(get_provider),
):
    if user.is_premium:
        raise HTTPException(status_code=400, detail="You are already a Premium user")

    request = request or CheckoutRequest()
    try:
        session = provider.create_session(user, request.successUrl, request.cancelUrl)
    except stripe.error.StripeError:
        logger.exception("Failed to create checkout session", extra={"user_id": user.id})
        raise HTTPException(status_code=502, detail="Failed to create checkout session")

    return {"id": session.id, "url": session.url}


@router.post("/verify-session")
def verify_session(
    request: VerifySessionRequest,
    user=Depends(get_current_user),
    provider=Depends(get_provider),
    engine=Depends(get_engine),
):
    if not request.sessionId:
        raise HTTPException(status_code=400, detail="Session ID is required")

    try:
        session = provider.retrieve_session(request.sessionId)
    except stripe.error.InvalidRequestError:
        raise HTTPException(status_code=404, detail="Session not found")
    except stripe.error.StripeError:
        logger.exception("Could not reach Stripe", extra={"session_id": request.sessionId})
        raise HTTPException(status_code=502, detail="Payment provider unavailable")

    try:
        result = engine.reconcile(session, caller=user)
    except AccountUnresolvable as exc:
        logger.error(str(exc), extra={"session_id": session.id, "user_id": user.id})
        raise HTTPException(status_code=422, detail="No account found for this payment")
    except StoreFailure:
        logger.exception("Failed to verify session", extra={"session_id": session.id})
        raise HTTPException(status_code=500, detail="Failed to verify session")

    if not result.completed:
        return {
            "success": False,
            "isPremium": user.is_premium,
            "message": "Payment not completed",
            "paymentStatus": result.provider_status,
        }

    message = (
        "Payment verified successfully"
        if result.outcome is Outcome.RECONCILED
        else "Payment already verified"
    )
    return {
        "success": True,
        # the checkout email may belong to another account than the caller
        "isPremium": result.user_id == user.id or bool(user.is_premium),
        "message": message,
        "payment": {
            "amount": result.amount,
            "currency": result.currency,
            "status": result.status,
            "paymentDate": result.payment_date.isoformat() if result.payment_date else None,
        },
    }


@router.get("/history")
def payment_history(user=Depends(get_current_user), store=Depends(get_store)):
    return [_history_row(p) for p in store.list_payments(user.id)]


@router.get("/status")
def payment_status(user=Depends(get_current_user), store=Depends(get_store)):
    completed = store.count_completed(user.id)
    return {
        "isPremium": bool(user.is_premium) or completed > 0,
        "totalPayments": completed,
        "latestPayment": _summary(store.latest_completed(user.id)),
    }


@router.get("/admin/payments")
def all_payments(admin=Depends(require_admin), store=Depends(get_store)):
    return [
        {**_history_row(p), "userId": p.user_id, "firebaseUid": p.firebase_uid}
        for p in store.list_payments()
    ]
