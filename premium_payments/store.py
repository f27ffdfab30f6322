"""Persistence for the payment ledger and the premium entitlement flag.

Every method opens its own short-lived session, so one store instance can be
shared by concurrent requests. Uniqueness of ``stripe_session_id`` and
``stripe_payment_intent_id`` is enforced by the database, and a violation
on insert is reported as ``DuplicatePayment``. Every other SQLAlchemy error,
including driver timeouts, becomes ``StoreFailure``. Nothing is retried here.
"""
import logging
from contextlib import contextmanager
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from premium_payments.errors import DuplicatePayment, StoreFailure
from premium_payments.models import Payment, User, utcnow

logger = logging.getLogger(__name__)


class PaymentStore:

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            raise StoreFailure(str(exc)) from exc
        finally:
            db.close()

    # --- ledger ---

    def find_payment(self, session_id, payment_intent_id=None):
        conditions = [Payment.stripe_session_id == session_id]
        if payment_intent_id:
            conditions.append(Payment.stripe_payment_intent_id == payment_intent_id)
        with self._session() as db:
            return db.query(Payment).filter(or_(*conditions)).first()

    def insert_payment(self, **fields):
        with self._session() as db:
            payment = Payment(**fields)
            db.add(payment)
            try:
                db.commit()
            except IntegrityError as exc:
                raise DuplicatePayment(fields.get("stripe_session_id")) from exc
            db.refresh(payment)
            return payment

    def list_payments(self, user_id=None):
        with self._session() as db:
            query = db.query(Payment)
            if user_id is not None:
                query = query.filter_by(user_id=user_id)
            return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    def count_completed(self, user_id):
        with self._session() as db:
            return db.query(Payment).filter_by(user_id=user_id, status="completed").count()

    def latest_completed(self, user_id):
        with self._session() as db:
            return (
                db.query(Payment)
                .filter_by(user_id=user_id, status="completed")
                .order_by(Payment.created_at.desc(), Payment.id.desc())
                .first()
            )

    # --- entitlement ---

    def find_user_by_uid(self, firebase_uid):
        if not firebase_uid:
            return None
        with self._session() as db:
            return db.query(User).filter_by(firebase_uid=firebase_uid).first()

    def find_user_by_email(self, email):
        if not email:
            return None
        with self._session() as db:
            return (
                db.query(User)
                .filter(func.lower(User.email) == email.strip().lower())
                .order_by(User.id)
                .first()
            )

    def grant_premium(self, user_id):
        """Set ``is_premium`` if it is not set yet.

        Returns True only for the call that performed the transition.
        """
        with self._session() as db:
            result = db.execute(
                update(User)
                .where(User.id == user_id, User.is_premium.is_(False))
                .values(is_premium=True, updated_at=utcnow())
            )
            db.commit()
            return result.rowcount == 1

    def get_or_create_user(self, firebase_uid, email, name=None, photo_url=None):
        user = self.find_user_by_uid(firebase_uid)
        if user:
            return user

        with self._session() as db:
            user = User(
                firebase_uid=firebase_uid,
                email=email,
                name=name or "User",
                photo_url=photo_url or "",
            )
            db.add(user)
            try:
                db.commit()
            except IntegrityError:
                # another request for the same identity created it first
                db.rollback()
                existing = db.query(User).filter_by(firebase_uid=firebase_uid).first()
                if existing is None:
                    raise StoreFailure(f"Could not create user {firebase_uid}")
                return existing
            db.refresh(user)
            logger.info("Created local account", extra={"firebase_uid": firebase_uid})
            return user
