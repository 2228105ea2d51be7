"""Outcomes — discriminated success/failure results returned by every public operation.

Invariants:
    - success=True implies error is None; success=False implies error is set
    - message is always human-readable
    - to_response() shape matches TrustLendError.to_response() on failure
"""

from dataclasses import dataclass, field
from typing import Any

from trustlend.core.errors import TrustLendError
from trustlend.core.loan_record import LoanRecord


@dataclass
class LoanOutcome:
    success: bool
    message: str
    loan: LoanRecord | None = None
    tx_hash: str | None = None
    error: TrustLendError | None = None
    effects: list[Any] = field(default_factory=list)

    @classmethod
    def ok(
        cls, message: str, loan: LoanRecord | None = None,
        tx_hash: str | None = None, effects: list[Any] | None = None,
    ) -> "LoanOutcome":
        return cls(True, message, loan, tx_hash, None, effects or [])

    @classmethod
    def failed(
        cls, error: TrustLendError, loan: LoanRecord | None = None,
        effects: list[Any] | None = None,
    ) -> "LoanOutcome":
        return cls(False, error.message, loan, None, error, effects or [])

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None

    def to_response(self) -> dict:
        if self.error is not None:
            response = self.error.to_response()
            response["loan"] = self.loan.to_dict() if self.loan else None
            return response
        return {
            "success": True,
            "message": self.message,
            "loan": self.loan.to_dict() if self.loan else None,
            "tx_hash": self.tx_hash,
            "effects": [
                e.to_dict() if hasattr(e, "to_dict") else e for e in self.effects
            ],
        }
