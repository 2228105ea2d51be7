"""Loan Record — the lending agreement tracked by the registry.

Invariants:
    - total_repayment_amount = principal + principal * rate / 100, rounded to minor units
    - total_repayment_amount and execute_at are computed once in new_loan_record() and never again
    - Lifecycle fields (repaid_at, defaulted_at, ...) stay None until their transition
    - Records are immutable; a transition stores a new record in place of the old one
"""

import random
import string
import time
from dataclasses import asdict, dataclass

from trustlend.core.domain_types import (
    Amount,
    EpochSeconds,
    LedgerAddress,
    LoanId,
    LoanStatus,
    round_amount,
)

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LENGTH = 9


@dataclass(frozen=True)
class LoanRecord:
    id: LoanId
    borrower_address: LedgerAddress
    lender_address: LedgerAddress
    principal_amount: Amount
    interest_rate: float
    total_repayment_amount: Amount
    duration_seconds: float
    created_at: EpochSeconds
    execute_at: EpochSeconds
    status: LoanStatus = LoanStatus.ACTIVE
    terms: str = ""
    tx_hash: str | None = None

    # --- Set by lifecycle transitions only ---
    repaid_at: float | None = None
    repayment_tx_hash: str | None = None
    defaulted_at: float | None = None
    failure_reason: str | None = None
    cancelled_at: float | None = None
    refund_tx_hash: str | None = None

    @property
    def interest_amount(self) -> float:
        return round_amount(self.total_repayment_amount - self.principal_amount)

    def involves(self, address: str) -> bool:
        return address in (self.borrower_address, self.lender_address)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["interest_amount"] = self.interest_amount
        return data


def compute_total_repayment(principal: float, interest_rate: float) -> float:
    return round_amount(principal + principal * interest_rate / 100)


def generate_loan_id(now: float | None = None) -> str:
    """Time-based id with a random suffix. Not collision-free; callers must check."""
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=_ID_SUFFIX_LENGTH))  # nosec B311
    return f"loan_{millis}_{suffix}"


def new_loan_record(
    *,
    loan_id: str,
    borrower_address: str,
    lender_address: str,
    principal_amount: float,
    interest_rate: float,
    duration_seconds: float,
    created_at: float,
    terms: str = "",
    tx_hash: str | None = None,
) -> LoanRecord:
    return LoanRecord(
        id=loan_id,
        borrower_address=borrower_address,
        lender_address=lender_address,
        principal_amount=round_amount(principal_amount),
        interest_rate=interest_rate,
        total_repayment_amount=compute_total_repayment(principal_amount, interest_rate),
        duration_seconds=duration_seconds,
        created_at=created_at,
        execute_at=created_at + duration_seconds,
        terms=terms,
        tx_hash=tx_hash,
    )
