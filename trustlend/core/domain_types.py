"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - LoanId and LedgerAddress wrap str — never pass raw strings through domain logic
    - Amounts are floats in ledger units; MINOR_UNITS_PER_UNIT defines rounding granularity
    - All valid states encoded as Enums — no raw string matching
    - DEFAULT_CREDIT_TIERS is ordered by min_credit_score ascending and immutable

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
    - Tier table is a tuple constant, injected into CreditLedger rather than read as a global
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

LoanId = NewType("LoanId", str)
LedgerAddress = NewType("LedgerAddress", str)


# ─── Value Types ─────────────────────────────────────────────────

Amount = NewType("Amount", float)            # ledger units
EpochSeconds = NewType("EpochSeconds", float)

MINOR_UNITS_PER_UNIT = 1_000_000
AMOUNT_PRECISION = 6


def round_amount(value: float) -> float:
    """Round to the ledger's minor-unit granularity."""
    return round(value, AMOUNT_PRECISION)


def to_minor_units(value: float) -> int:
    return int(round(value * MINOR_UNITS_PER_UNIT))


def from_minor_units(value: int) -> float:
    return value / MINOR_UNITS_PER_UNIT


# ─── Enums ───────────────────────────────────────────────────────

class LoanStatus(str, Enum):
    """Loan lifecycle states. ACTIVE is initial, the rest are terminal."""
    ACTIVE = "active"
    REPAID = "repaid"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


class RepaymentTrigger(str, Enum):
    """What initiated a repayment attempt."""
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class EligibilityReason(str, Enum):
    """Distinguishes the three eligibility outcomes for callers."""
    ELIGIBLE = "eligible"
    EXCEEDS_TIER = "exceeds_tier"
    EXCEEDS_MAX_TIER = "exceeds_max_tier"


class LoanEventKind(str, Enum):
    """Lifecycle events published after a status transition."""
    CREATED = "loan.created"
    REPAID = "loan.repaid"
    DEFAULTED = "loan.defaulted"
    CANCELLED = "loan.cancelled"


# ─── Credit Tiers ────────────────────────────────────────────────

@dataclass(frozen=True)
class CreditTier:
    """Credit-score bracket defining the largest loan a borrower may request."""
    min_credit_score: int
    max_loan_amount: float
    label: str

    def to_dict(self) -> dict:
        return {
            "min_credit_score": self.min_credit_score,
            "max_loan_amount": self.max_loan_amount,
            "label": self.label,
        }


DEFAULT_CREDIT_TIERS: tuple[CreditTier, ...] = (
    CreditTier(0, 10, "Starter"),
    CreditTier(150, 25, "Bronze"),
    CreditTier(300, 50, "Silver"),
    CreditTier(500, 100, "Gold"),
    CreditTier(750, 200, "Platinum"),
    CreditTier(1000, 500, "Diamond"),
)

STARTING_CREDIT_SCORE = 100
