"""Exception types raised by the budget core.

Every error carries a user-facing message. The web layer maps each class to
an HTTP status; nothing here is fatal, the caller fixes the input and retries.
"""


class BudgetError(Exception):
    """Base class for all budget errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BudgetError):
    """Missing or malformed input."""


class NotFoundError(BudgetError):
    """Referenced entity does not exist."""

    status_code = 404


class PreconditionError(BudgetError):
    """A business rule blocks the operation until the user resolves it."""


class MonthNotEndedError(PreconditionError):
    def __init__(self):
        super().__init__("Cannot seal a month that hasn't ended")


class MonthAlreadySealedError(PreconditionError):
    def __init__(self):
        super().__init__("Month is already sealed")


class MonthSealedError(PreconditionError):
    """Raised when editing ledger data that belongs to a sealed month."""

    def __init__(self, month: str):
        super().__init__(f"Month {month} is sealed")
        self.month = month


class UncategorizedTransactionsError(PreconditionError):
    def __init__(self, count: int):
        super().__init__(f"{count} uncategorized transactions remain")
        self.count = count


class ExternalServiceError(BudgetError):
    """The bank aggregation service failed or returned an error status."""

    status_code = 502
