class ReconciliationError(Exception):
    """Base class for failures that stop a checkout from being reconciled."""


class AccountUnresolvable(ReconciliationError):
    """No local account matches the checkout's email, caller or metadata uid."""

    def __init__(self, session_id):
        super().__init__(f"No account can be credited for checkout session {session_id}")
        self.session_id = session_id


class StoreFailure(ReconciliationError):
    """The database was unavailable or rejected a write for a reason other than a duplicate."""


class DuplicatePayment(Exception):
    """A payment for this checkout session or payment intent is already in the ledger."""

    def __init__(self, session_id):
        super().__init__(f"Payment for checkout session {session_id} already recorded")
        self.session_id = session_id
