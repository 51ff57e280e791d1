"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Validation
  2xxx: Account / ledger business rules
  3xxx: Provider authentication
  9xxx: System (dependencies, configuration)
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


# --- 1xxx: Validation ---

class ValidationError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(1001, message, 400)


class MissingFieldsError(ValidationError):
    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"Missing required fields: {', '.join(fields)}")
        self.code = 1002
        self.fields = fields


class UnsupportedCurrencyError(ValidationError):
    def __init__(self, operation: str) -> None:
        super().__init__(f"Only SOL {operation} are currently supported")
        self.code = 1003


class NonPositiveAmountError(ValidationError):
    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation} amount must be positive")
        self.code = 1004


class BalanceOverflowError(ValidationError):
    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation} would exceed the maximum balance")
        self.code = 1005


# --- 2xxx: Account / ledger ---

class InsufficientFundsError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2001,
            "Insufficient balance for withdrawal: "
            f"required {required} lamports, available {available} lamports",
            400,
        )
        self.required = required
        self.available = available


class AccountNotFoundError(AppError):
    def __init__(self, username: str) -> None:
        super().__init__(2002, f"User not found: {username}", 404)


class LedgerRejectedError(AppError):
    """The atomic ledger procedure refused the mutation for a business reason."""

    def __init__(self, reason: str) -> None:
        super().__init__(2003, f"Balance update failed: {reason}", 400)
        self.reason = reason


# --- 3xxx: Provider authentication ---

class AuthenticationError(AppError):
    def __init__(self, message: str, http_status: int = 400) -> None:
        super().__init__(3001, message, http_status)


class InvalidSignatureError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Invalid signature", 400)
        self.code = 3002


class ExpiredTimestampError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Invalid or expired timestamp", 400)
        self.code = 3003


class UnauthorizedIpError(AuthenticationError):
    def __init__(self, client_ip: str | None) -> None:
        super().__init__("Unauthorized IP", 403)
        self.code = 3004
        self.client_ip = client_ip


class SessionNotFoundError(AuthenticationError):
    def __init__(self, username: str) -> None:
        super().__init__("Session expired or invalid", 403)
        self.code = 3005
        self.username = username


# --- 9xxx: System ---

class DependencyError(AppError):
    """A backing store or upstream service failed or timed out."""

    def __init__(self, detail: str = "Service temporarily unavailable", http_status: int = 503) -> None:
        super().__init__(9001, detail, http_status)


class ConfigurationError(AppError):
    def __init__(self, detail: str = "Server configuration error") -> None:
        super().__init__(9002, detail, 500)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9003, detail, 500)
