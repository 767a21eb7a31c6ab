"""Unified error codes and custom exceptions.

Error code ranges:
  2xxx: Account / balance
  3xxx: Hold
  4xxx: Plan / policy
  5xxx: Operation status
  9xxx: System

Every error carries a stable integer code so callers can branch on kind
instead of parsing messages.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 2xxx: Account / balance ---

class InsufficientCreditsError(AppError):
    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            2001,
            f"Insufficient credits: required {required}, available {available}",
            422,
        )


class AccountNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2002, f"Account not found for user {user_id}", 404)


class DailyCapExceededError(AppError):
    def __init__(self, cap: int, used: int) -> None:
        super().__init__(
            2003,
            f"Daily trial credit cap reached: used {used} of {cap}",
            422,
        )


class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2004, f"Invalid amount: {detail}", 422)


class ConcurrencyConflictError(AppError):
    def __init__(self, user_id: str, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            2005,
            f"Concurrent update conflict for user {user_id} after {attempts} attempts",
            409,
        )


class LedgerInsertFailedError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2006, f"Ledger insert failed: {detail}", 500)


# --- 3xxx: Hold ---

class HoldNotFoundError(AppError):
    def __init__(self, hold_id: str) -> None:
        super().__init__(3001, f"Hold not found: {hold_id}", 404)


# --- 4xxx: Plan / policy ---

class FeatureNotAvailableError(AppError):
    def __init__(self, plan: str, detail: str) -> None:
        super().__init__(4001, f"Not available on plan {plan}: {detail}", 403)


class UnknownCreditPackError(AppError):
    def __init__(self, pack: str) -> None:
        super().__init__(4002, f"Unknown credit pack: {pack}", 422)


# --- 5xxx: Operation status ---

class OperationStatusNotFoundError(AppError):
    def __init__(self, op_id: str) -> None:
        super().__init__(5001, f"No status recorded for operation {op_id}", 404)


# --- 9xxx: System ---

class UnauthorizedError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Missing or invalid internal token", 401)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
