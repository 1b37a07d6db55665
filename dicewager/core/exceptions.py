class WagerError(Exception):
    """Base class for every error the wagering core raises."""


# ==================== Local validation ====================

class InvalidAmount(WagerError):
    def __init__(self, amount: str = ""):
        self.amount = amount
        super().__init__("Please enter a valid bet amount")


class InsufficientBalance(WagerError):
    def __init__(self, amount=None, balance=None):
        self.amount = amount
        self.balance = balance
        super().__init__("Insufficient balance")


class InvalidMultiplier(WagerError):
    def __init__(self, multiplier=None, allowed=()):
        self.multiplier = multiplier
        self.allowed = tuple(allowed)
        super().__init__(f"Multiplier must be one of {list(self.allowed)}")


class BetInProgress(WagerError):
    def __init__(self):
        super().__init__("A bet is already in progress")


class BalanceNotLoaded(WagerError):
    def __init__(self):
        super().__init__("Balance is still loading")


class IdempotencyConflict(ValueError):
    """An Idempotency-Key was reused for a different bet."""


# ==================== Ledger Service ====================

class LedgerError(WagerError):
    """The Ledger Service could not give an authoritative answer."""


class NetworkFailure(LedgerError):
    """Transport error or timeout talking to the Ledger Service."""


class ServiceError(LedgerError):
    """Non-2xx status or a response body of the wrong shape."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class LedgerRejected(ValueError):
    """Raised server-side when a request breaks the settlement rules."""
