from __future__ import annotations


class CreditError(ValueError):
    """Base error of the credit engine; `code` doubles as the HTTP error detail."""

    code = "credit_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class InvalidParams(CreditError):
    code = "invalid_params"


class InvalidAmount(CreditError):
    code = "invalid_amount"


class InsufficientCredits(CreditError):
    code = "insufficient_credits"


class PlanNotConfigured(CreditError):
    code = "plan_not_configured"


class BalanceConflict(CreditError):
    """The balance row changed underneath a read-then-write."""

    code = "balance_conflict"
