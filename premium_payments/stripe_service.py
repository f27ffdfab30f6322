import os
from dataclasses import dataclass, field
from typing import Optional
import stripe

from premium_payments import config


@dataclass
class CheckoutSession:
    id: str
    payment_status: str
    payment_intent: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_details: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    payment_method_types: list = field(default_factory=list)
    url: Optional[str] = None


def stripe_to_dict(value):
    """Plain dicts and lists from a StripeObject tree, or from already-plain data."""
    if isinstance(value, dict):
        return {key: stripe_to_dict(item) for key, item in value.items()}
    if isinstance(value, list):
        return [stripe_to_dict(item) for item in value]
    # newer stripe releases no longer subclass dict
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return stripe_to_dict(to_dict())
    return value


def checkout_session_from_stripe(obj) -> CheckoutSession:
    data = stripe_to_dict(obj)
    details = data.get("customer_details") or {}
    payment_intent = data.get("payment_intent")
    if isinstance(payment_intent, dict):  # expanded
        payment_intent = payment_intent.get("id")

    return CheckoutSession(
        id=data["id"],
        payment_status=data.get("payment_status") or "unpaid",
        payment_intent=payment_intent,
        amount_total=data.get("amount_total"),
        currency=data.get("currency"),
        customer_email=details.get("email") or data.get("customer_email"),
        customer_name=details.get("name"),
        customer_details=details,
        metadata=data.get("metadata") or {},
        payment_method_types=data.get("payment_method_types") or [],
        url=data.get("url"),
    )


class StripeCheckoutProvider:
    """Checkout sessions and webhook verification backed by the Stripe API."""

    def __init__(self, api_key=None):
        stripe.api_key = api_key or os.getenv("STRIPE_SECRET_KEY")

    def create_session(self, user, success_url=None, cancel_url=None) -> CheckoutSession:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": config.PREMIUM_CURRENCY,
                        "unit_amount": config.PREMIUM_PRICE_AMOUNT,
                        "product_data": {
                            "name": config.PREMIUM_PRODUCT_NAME,
                            "description": "One-time payment for lifetime premium access",
                        },
                    },
                    "quantity": 1,
                }
            ],
            metadata={"firebaseUid": user.firebase_uid, "name": user.name or ""},
            customer_email=user.email,
            success_url=success_url
            or f"{config.CLIENT_URL}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{config.CLIENT_URL}/payment/cancel",
        )
        return checkout_session_from_stripe(session)

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        return checkout_session_from_stripe(stripe.checkout.Session.retrieve(session_id))

    def construct_event(self, payload: bytes, signature: str):
        event = stripe.Webhook.construct_event(
            payload,
            signature,
            os.getenv("STRIPE_WEBHOOK_SECRET")
        )
        return stripe_to_dict(event)
