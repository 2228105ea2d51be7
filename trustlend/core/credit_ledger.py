"""Credit Ledger — per-borrower credit score, tier lookup, and eligibility rules.

Invariants:
    - Pure: no IO, no async; only the passed WalletProfile is mutated
    - Tier lookup scans highest -> lowest, first match wins, lowest tier is the fallback
    - Default penalty never drives a score below 0
    - A missing score (None) is treated as the starting score; 0 is a real score

Design Decisions:
    - Tier table injected at construction so tests can swap schedules
    - Repayment bonus policy is configuration: "flat" (default) applies a fixed
      increment per repayment, "scaled" applies calculate_credit_increase()
"""

from dataclasses import dataclass
from typing import Literal

from trustlend.core.domain_types import (
    CreditTier,
    DEFAULT_CREDIT_TIERS,
    EligibilityReason,
    STARTING_CREDIT_SCORE,
)
from trustlend.core.errors import ConfigurationError

BonusPolicy = Literal["flat", "scaled"]


@dataclass
class WalletProfile:
    """Credit profile embedded in a stored wallet record."""
    address: str
    label: str = ""
    credit_score: int | None = None

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "label": self.label,
            "credit_score": self.credit_score,
        }


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    tier: CreditTier
    message: str
    reason: EligibilityReason
    next_tier: CreditTier | None = None

    def to_dict(self) -> dict:
        return {
            "eligible": self.eligible,
            "tier": self.tier.to_dict(),
            "message": self.message,
            "reason": self.reason.value,
            "next_tier": self.next_tier.to_dict() if self.next_tier else None,
        }


@dataclass(frozen=True)
class CreditUpdate:
    """Score change applied to a profile. change is signed."""
    address: str
    old_score: int
    new_score: int
    change: int
    new_tier: CreditTier

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "old_score": self.old_score,
            "new_score": self.new_score,
            "change": self.change,
            "new_tier": self.new_tier.to_dict(),
        }


@dataclass(frozen=True)
class TierProgress:
    current: CreditTier
    next: CreditTier | None
    progress_percent: float
    points_needed: int

    def to_dict(self) -> dict:
        return {
            "current": self.current.to_dict(),
            "next": self.next.to_dict() if self.next else None,
            "progress_percent": self.progress_percent,
            "points_needed": self.points_needed,
        }


class CreditLedger:
    """Credit rules over an ordered, immutable tier table."""

    def __init__(
        self,
        tiers: tuple[CreditTier, ...] = DEFAULT_CREDIT_TIERS,
        *,
        starting_score: int = STARTING_CREDIT_SCORE,
        bonus_policy: BonusPolicy = "flat",
        repayment_bonus_points: int = 1,
        default_penalty_points: int = 50,
        points_per_unit: int = 2,
        min_credit_gain: int = 10,
        max_credit_gain: int = 100,
    ):
        _validate_tiers(tiers)
        if bonus_policy not in ("flat", "scaled"):
            raise ConfigurationError(f"Unknown credit bonus policy: {bonus_policy!r}")
        self._tiers = tuple(tiers)
        self.starting_score = starting_score
        self.bonus_policy = bonus_policy
        self.repayment_bonus_points = repayment_bonus_points
        self.default_penalty_points = default_penalty_points
        self.points_per_unit = points_per_unit
        self.min_credit_gain = min_credit_gain
        self.max_credit_gain = max_credit_gain

    # --- Profile lifecycle ------------------------------------------------------

    def initialize(self, profile: WalletProfile) -> WalletProfile:
        """Give a profile the starting score if it has none. Idempotent."""
        if profile.credit_score is None:
            profile.credit_score = self.starting_score
        return profile

    def score_of(self, profile: WalletProfile) -> int:
        if profile.credit_score is None:
            return self.starting_score
        return profile.credit_score

    # --- Tiers ------------------------------------------------------------------

    def all_tiers(self) -> list[CreditTier]:
        return list(self._tiers)

    def get_tier(self, score: int) -> CreditTier:
        """Highest tier whose minimum the score reaches; lowest tier otherwise."""
        for tier in reversed(self._tiers):
            if score >= tier.min_credit_score:
                return tier
        return self._tiers[0]

    def get_next_tier(self, score: int) -> CreditTier | None:
        for tier in self._tiers:
            if tier.min_credit_score > score:
                return tier
        return None

    def check_eligibility(
        self, profile: WalletProfile, requested_amount: float,
    ) -> EligibilityResult:
        score = self.score_of(profile)
        tier = self.get_tier(score)
        if requested_amount <= tier.max_loan_amount:
            return EligibilityResult(
                eligible=True,
                tier=tier,
                message=(
                    f"Eligible for {requested_amount} unit loan with "
                    f"{tier.label} credit tier"
                ),
                reason=EligibilityReason.ELIGIBLE,
            )
        next_tier = self.get_next_tier(score)
        if next_tier is None:
            return EligibilityResult(
                eligible=False,
                tier=tier,
                message=(
                    f"Loan amount exceeds maximum tier limit "
                    f"({tier.max_loan_amount} units)."
                ),
                reason=EligibilityReason.EXCEEDS_MAX_TIER,
            )
        return EligibilityResult(
            eligible=False,
            tier=tier,
            message=(
                f"Loan amount exceeds {tier.label} tier limit "
                f"({tier.max_loan_amount} units). Need {next_tier.min_credit_score} "
                f"credit score for {next_tier.label} tier "
                f"({next_tier.max_loan_amount} unit limit)."
            ),
            reason=EligibilityReason.EXCEEDS_TIER,
            next_tier=next_tier,
        )

    # --- Score adjustments ------------------------------------------------------

    def calculate_credit_increase(self, loan_amount: float) -> int:
        """Variable gain: points_per_unit per unit repaid, clamped to [min, max]."""
        base_points = int(loan_amount * self.points_per_unit)
        return min(max(base_points, self.min_credit_gain), self.max_credit_gain)

    def apply_repayment_bonus(
        self, profile: WalletProfile, loan_amount: float | None = None,
    ) -> CreditUpdate:
        if self.bonus_policy == "scaled" and loan_amount is not None:
            increase = self.calculate_credit_increase(loan_amount)
        else:
            increase = self.repayment_bonus_points
        old_score = self.score_of(profile)
        return self._set_score(profile, old_score, old_score + increase)

    def apply_default_penalty(self, profile: WalletProfile) -> CreditUpdate:
        old_score = self.score_of(profile)
        new_score = max(0, old_score - self.default_penalty_points)
        return self._set_score(profile, old_score, new_score)

    def _set_score(
        self, profile: WalletProfile, old_score: int, new_score: int,
    ) -> CreditUpdate:
        profile.credit_score = new_score
        return CreditUpdate(
            address=profile.address,
            old_score=old_score,
            new_score=new_score,
            change=new_score - old_score,
            new_tier=self.get_tier(new_score),
        )

    # --- Display helpers --------------------------------------------------------

    def format_credit_display(self, score: int) -> str:
        return f"{score} ({self.get_tier(score).label})"

    def progress_to_next_tier(self, score: int) -> TierProgress:
        current = self.get_tier(score)
        nxt = self.get_next_tier(score)
        if nxt is None:
            return TierProgress(current, None, 100.0, 0)
        span = nxt.min_credit_score - current.min_credit_score
        progress = (score - current.min_credit_score) / span * 100
        return TierProgress(
            current=current,
            next=nxt,
            progress_percent=round(max(0.0, min(100.0, progress)), 2),
            points_needed=nxt.min_credit_score - score,
        )


def _validate_tiers(tiers: tuple[CreditTier, ...]) -> None:
    if not tiers:
        raise ConfigurationError("Credit tier table cannot be empty")
    mins = [t.min_credit_score for t in tiers]
    if mins != sorted(mins) or len(set(mins)) != len(mins):
        raise ConfigurationError(
            "Credit tiers must be ordered by strictly increasing min_credit_score",
        )
