from functools import lru_cache
from fastapi import Depends

from premium_payments.database import SessionLocal
from premium_payments.reconciliation import ReconciliationEngine
from premium_payments.store import PaymentStore
from premium_payments.stripe_service import StripeCheckoutProvider


def get_store():
    return PaymentStore(SessionLocal)


@lru_cache
def get_provider():
    return StripeCheckoutProvider()


def get_engine(store=Depends(get_store)):
    return ReconciliationEngine(store)
