"""Error Hierarchy — typed, categorized exceptions for all TrustLend failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; ledger/infrastructure errors (500-level) are critical
    - to_response() produces the REST envelope used by the API and by LoanOutcome
    - Secrets (credential material) never appear in messages or context

Design Decisions:
    - Single hierarchy with TrustLendError base: services convert it into failure
      outcomes, FastAPI global handler renders it (one error shape end to end)
    - ErrorContext as dataclass: loan_id/address travel with the error, not with the logger
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    LEDGER = "ledger"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Context attached to an error for observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    loan_id: str | None = None
    address: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class TrustLendError(Exception):
    """Base exception for all TrustLend errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "loan_id": self.context.loan_id,
                    "address": self.context.address,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class LoanValidationError(TrustLendError):
    """Loan request input is missing or malformed."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class CreditLimitExceededError(TrustLendError):
    """Requested principal exceeds the borrower's credit tier limit."""
    def __init__(
        self, message: str, requested: float, limit: float,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "CREDIT_LIMIT_EXCEEDED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 400,
        )
        self.requested = requested
        self.limit = limit


class InsufficientLenderBalanceError(TrustLendError):
    """Lender cannot cover principal plus the fee buffer."""
    def __init__(
        self, balance: float, required: float, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Lender balance {balance} is below the required {required}",
            "INSUFFICIENT_LENDER_BALANCE", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 400,
        )
        self.balance = balance
        self.required = required


class UnauthorizedLoanActionError(TrustLendError):
    """Caller identity does not match the party allowed to act on the loan."""
    def __init__(self, action: str, context: ErrorContext | None = None):
        super().__init__(
            f"Only the borrower may {action} this loan",
            "UNAUTHORIZED_LOAN_ACTION", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.ERROR, context, 403,
        )
        self.action = action


class LoanNotFoundError(TrustLendError):
    """Requested loan does not exist."""
    def __init__(self, loan_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.loan_id = ctx.loan_id or loan_id
        super().__init__(
            f"Loan '{loan_id}' not found",
            "LOAN_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, ctx, 404,
        )


class LoanNotActiveError(TrustLendError):
    """Loan is already in a terminal state, or its repayment is already claimed."""
    def __init__(self, loan_id: str, status: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.loan_id = ctx.loan_id or loan_id
        super().__init__(
            f"Loan '{loan_id}' is not active (status: {status})",
            "LOAN_NOT_ACTIVE", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, ctx, 409,
        )
        self.status = status


class InvalidLoanTransitionError(TrustLendError):
    """State machine rejected a status change."""
    def __init__(
        self, loan_id: str, current: str, requested: str,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.loan_id = ctx.loan_id or loan_id
        super().__init__(
            f"Loan '{loan_id}' cannot move from {current} to {requested}",
            "INVALID_LOAN_TRANSITION", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, ctx, 409,
        )
        self.current = current
        self.requested = requested


class DuplicateScheduleError(TrustLendError):
    """A scheduler entry already exists for this loan."""
    def __init__(self, loan_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.loan_id = ctx.loan_id or loan_id
        super().__init__(
            f"Repayment for loan '{loan_id}' is already scheduled",
            "DUPLICATE_SCHEDULE", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, ctx, 409,
        )


# ─── Ledger / Infrastructure Errors (500-level) ─────────────────

class PaymentFailedError(TrustLendError):
    """Origination payment was rejected or could not be submitted."""
    def __init__(
        self, message: str, result_code: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Principal payment failed: {message}",
            "PAYMENT_FAILED", ErrorCategory.LEDGER,
            ErrorSeverity.ERROR, context, 502,
        )
        self.result_code = result_code


class RepaymentFailedError(TrustLendError):
    """Repayment payment failed; the loan is now defaulted."""
    def __init__(
        self, message: str, result_code: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Repayment failed: {message}",
            "REPAYMENT_FAILED", ErrorCategory.LEDGER,
            ErrorSeverity.ERROR, context, 502,
        )
        self.result_code = result_code


class RefundFailedError(TrustLendError):
    """Cancellation refund failed; the loan stays active."""
    def __init__(
        self, message: str, result_code: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Cancellation refund failed: {message}",
            "REFUND_FAILED", ErrorCategory.LEDGER,
            ErrorSeverity.ERROR, context, 502,
        )
        self.result_code = result_code


class LedgerConnectionError(TrustLendError):
    """Ledger unreachable or request timed out (hard failure, not a rejection)."""
    def __init__(
        self, message: str, operation: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Ledger {operation} failed: {message}",
            "LEDGER_UNAVAILABLE", ErrorCategory.LEDGER,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class LedgerAccountNotFoundError(TrustLendError):
    """Ledger has no account at the address; retrying cannot help."""
    def __init__(self, address: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.address = ctx.address or address
        super().__init__(
            f"Ledger account '{address}' not found",
            "LEDGER_ACCOUNT_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, ctx, 404,
        )


class SettlementError(TrustLendError):
    """Ledger outcome is known but the loan could not be moved to its terminal status."""
    def __init__(
        self, loan_id: str, status: str, message: str,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.loan_id = ctx.loan_id or loan_id
        super().__init__(
            f"Loan '{loan_id}' could not be settled as {status}: {message}",
            "SETTLEMENT_FAILED", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, ctx, 500,
        )
        self.status = status


class LoanIdCollisionError(TrustLendError):
    """Could not generate an unused loan id within the attempt budget."""
    def __init__(self, attempts: int, context: ErrorContext | None = None):
        super().__init__(
            f"Loan id generation collided {attempts} times",
            "LOAN_ID_COLLISION", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.attempts = attempts


class ConfigurationError(TrustLendError):
    """Invalid static configuration (e.g. malformed credit tier table)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFIGURATION_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )
