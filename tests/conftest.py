import os

# must be set before premium_payments.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from premium_payments.database import Base
from premium_payments.models import Payment, User
from premium_payments.store import PaymentStore
from premium_payments.stripe_service import CheckoutSession


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return PaymentStore(session_factory)


@pytest.fixture
def make_user(session_factory):
    def _make_user(uid="u1", email="u1@example.com", name="User One", is_premium=False, role="user"):
        db = session_factory()
        user = User(firebase_uid=uid, email=email, name=name, is_premium=is_premium, role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        db.close()
        return user
    return _make_user


@pytest.fixture
def ledger(session_factory):
    """Read helpers for asserting on what the database really holds."""
    class Ledger:
        def payments(self, session_id=None):
            db = session_factory()
            query = db.query(Payment)
            if session_id:
                query = query.filter_by(stripe_session_id=session_id)
            rows = query.all()
            db.close()
            return rows

        def user(self, uid):
            db = session_factory()
            user = db.query(User).filter_by(firebase_uid=uid).first()
            db.close()
            return user

    return Ledger()


def checkout_session(session_id="sess_1", payment_status="paid", **overrides):
    fields = dict(
        id=session_id,
        payment_status=payment_status,
        payment_intent=f"pi_{session_id}",
        amount_total=150000,
        currency="bdt",
        customer_email="u1@example.com",
        customer_name="User One",
        customer_details={"email": "u1@example.com", "name": "User One"},
        metadata={"firebaseUid": "u1", "name": "User One"},
        payment_method_types=["card"],
    )
    fields.update(overrides)
    return CheckoutSession(**fields)


@pytest.fixture
def make_session():
    return checkout_session
