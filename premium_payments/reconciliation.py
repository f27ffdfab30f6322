"""Turns a paid Stripe checkout into one ledger row and a premium grant.

Both the webhook and the verify-session endpoint call
``ReconciliationEngine.reconcile`` and often race on the same session. The
engine takes no lock. The unique constraints on the payments table decide
the winner, and the loser re-reads the winning row and reports it as
already reconciled.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from premium_payments import config
from premium_payments.errors import AccountUnresolvable, DuplicatePayment, StoreFailure
from premium_payments.models import Payment, utcnow
from premium_payments.stripe_service import CheckoutSession

logger = logging.getLogger(__name__)

PAID = "paid"


class Outcome(enum.Enum):
    RECONCILED = "reconciled"
    ALREADY_RECONCILED = "already_reconciled"
    NOT_COMPLETED = "not_completed"


@dataclass
class ReconciliationResult:
    outcome: Outcome
    session_id: str
    provider_status: str
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    payment_date: Optional[datetime] = None
    user_id: Optional[int] = None

    @property
    def completed(self):
        return self.outcome is not Outcome.NOT_COMPLETED

    @classmethod
    def from_payment(cls, outcome, payment: Payment, provider_status=PAID):
        return cls(
            outcome=outcome,
            session_id=payment.stripe_session_id,
            provider_status=provider_status,
            amount=payment.amount,
            currency=payment.currency,
            status=payment.status,
            payment_date=payment.payment_date,
            user_id=payment.user_id,
        )


class ReconciliationEngine:

    def __init__(self, store):
        self.store = store

    def reconcile(self, session: CheckoutSession, caller=None) -> ReconciliationResult:
        """Record ``session`` in the ledger exactly once.

        ``session`` must come from Stripe (a webhook event or a retrieve
        call), never from the client. ``caller`` is the logged-in user on the
        verify-session path and None on the webhook path.

        Raises AccountUnresolvable when no account can be credited and
        StoreFailure when the database cannot be used.
        """
        log_extra = {"session_id": session.id, "payment_status": session.payment_status}

        if session.payment_status != PAID:
            logger.info("Checkout not paid yet", extra=log_extra)
            return ReconciliationResult(
                outcome=Outcome.NOT_COMPLETED,
                session_id=session.id,
                provider_status=session.payment_status,
            )

        existing = self.store.find_payment(session.id, session.payment_intent)
        if existing:
            logger.info("Checkout already reconciled", extra=log_extra)
            return ReconciliationResult.from_payment(Outcome.ALREADY_RECONCILED, existing)

        user = self._resolve_account(session, caller)

        if self.store.grant_premium(user.id):
            logger.info("Premium granted", extra={**log_extra, "user_id": user.id})

        try:
            payment = self.store.insert_payment(
                user_id=user.id,
                firebase_uid=user.firebase_uid,
                email=user.email,
                stripe_session_id=session.id,
                stripe_payment_intent_id=session.payment_intent,
                amount=session.amount_total or 0,
                currency=session.currency or config.PREMIUM_CURRENCY,
                status="completed",
                payment_method=(session.payment_method_types or ["card"])[0],
                customer_name=session.customer_name or user.name,
                payment_date=utcnow(),
                payment_metadata={
                    "sessionMetadata": session.metadata,
                    "customerDetails": session.customer_details,
                },
            )
        except DuplicatePayment:
            # the other ingress path inserted between our lookup and our insert
            winner = self.store.find_payment(session.id, session.payment_intent)
            if winner is None:
                raise StoreFailure(
                    f"Insert for checkout session {session.id} violated a constraint "
                    "but no matching payment exists"
                )
            logger.info("Lost reconciliation race, reusing stored payment", extra=log_extra)
            return ReconciliationResult.from_payment(Outcome.ALREADY_RECONCILED, winner)

        logger.info(
            "Checkout reconciled",
            extra={**log_extra, "user_id": user.id, "amount": payment.amount},
        )
        return ReconciliationResult.from_payment(Outcome.RECONCILED, payment)

    def _resolve_account(self, session, caller):
        # same order on both paths: checkout email, logged-in caller, metadata uid
        user = self.store.find_user_by_email(session.customer_email)
        if user is None and caller is not None:
            user = caller
        if user is None:
            user = self.store.find_user_by_uid(session.metadata.get("firebaseUid"))
        if user is None:
            raise AccountUnresolvable(session.id)
        return user
