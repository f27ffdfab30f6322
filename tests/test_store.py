import pytest
from sqlalchemy.exc import OperationalError

from premium_payments.errors import DuplicatePayment, StoreFailure
from premium_payments.store import PaymentStore


def payment_fields(user, session_id="sess_1", payment_intent="pi_1", **overrides):
    fields = dict(
        user_id=user.id,
        firebase_uid=user.firebase_uid,
        email=user.email,
        stripe_session_id=session_id,
        stripe_payment_intent_id=payment_intent,
        amount=150000,
        currency="bdt",
        status="completed",
    )
    fields.update(overrides)
    return fields


def test_insert_and_find_by_session_or_intent(store, make_user):
    user = make_user()
    created = store.insert_payment(**payment_fields(user))

    assert created.id is not None
    assert store.find_payment("sess_1").id == created.id
    assert store.find_payment("sess_unknown", "pi_1").id == created.id
    assert store.find_payment("sess_unknown", None) is None


def test_duplicate_session_id_raises_duplicate(store, make_user, ledger):
    user = make_user()
    store.insert_payment(**payment_fields(user))

    with pytest.raises(DuplicatePayment) as excinfo:
        store.insert_payment(**payment_fields(user, payment_intent="pi_2"))

    assert excinfo.value.session_id == "sess_1"
    assert len(ledger.payments()) == 1


def test_duplicate_payment_intent_raises_duplicate(store, make_user):
    user = make_user()
    store.insert_payment(**payment_fields(user))

    with pytest.raises(DuplicatePayment):
        store.insert_payment(**payment_fields(user, session_id="sess_2"))


def test_missing_payment_intents_do_not_collide(store, make_user, ledger):
    user = make_user()
    store.insert_payment(**payment_fields(user, "sess_1", None))
    store.insert_payment(**payment_fields(user, "sess_2", None))

    assert len(ledger.payments()) == 2


def test_unavailable_database_is_store_failure(mocker):
    db = mocker.Mock()
    db.query.side_effect = OperationalError("SELECT 1", {}, Exception("connection timed out"))
    store = PaymentStore(lambda: db)

    with pytest.raises(StoreFailure):
        store.find_payment("sess_1")

    db.close.assert_called_once()


def test_grant_premium_is_monotonic(store, make_user, ledger):
    user = make_user(is_premium=False)

    assert store.grant_premium(user.id) is True
    assert store.grant_premium(user.id) is False
    assert ledger.user("u1").is_premium is True


def test_find_user_by_email_ignores_case(store, make_user):
    user = make_user(email="Reader@Example.com")

    assert store.find_user_by_email(" reader@example.com ").id == user.id
    assert store.find_user_by_email("") is None
    assert store.find_user_by_uid(None) is None


def test_get_or_create_user_is_idempotent(store, ledger):
    first = store.get_or_create_user("uid-7", "seven@example.com", None, None)
    second = store.get_or_create_user("uid-7", "seven@example.com", "Seven", None)

    assert first.id == second.id
    assert first.name == "User"
    assert ledger.user("uid-7").email == "seven@example.com"


def test_get_or_create_user_recovers_from_concurrent_create(session_factory, make_user, mocker):
    store = PaymentStore(session_factory)
    mocker.patch.object(store, "find_user_by_uid", return_value=None)
    existing = make_user(uid="uid-8", email="eight@example.com")

    user = store.get_or_create_user("uid-8", "eight@example.com")

    assert user.id == existing.id


def test_reporting_reads(store, make_user):
    user = make_user()
    other = make_user(uid="u2", email="u2@example.com")
    store.insert_payment(**payment_fields(user, "sess_1", "pi_1"))
    store.insert_payment(**payment_fields(user, "sess_2", "pi_2", status="refunded"))
    store.insert_payment(**payment_fields(user, "sess_3", "pi_3"))
    store.insert_payment(**payment_fields(other, "sess_4", "pi_4"))

    assert [p.stripe_session_id for p in store.list_payments(user.id)] == ["sess_3", "sess_2", "sess_1"]
    assert len(store.list_payments()) == 4
    assert store.count_completed(user.id) == 2
    assert store.latest_completed(user.id).stripe_session_id == "sess_3"
    assert store.latest_completed(9999) is None
