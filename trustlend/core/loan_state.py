"""Loan State Machine — allowed status transitions for LoanRecord.

Invariants:
    - All functions are PURE: no IO, no async, no side effects
    - ACTIVE is the only non-terminal state; terminal states have no exits
    - check_transition returns an error dict on violation, None on success
"""

from trustlend.core.domain_types import LoanStatus

ALLOWED_TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.ACTIVE: frozenset({
        LoanStatus.REPAID, LoanStatus.DEFAULTED, LoanStatus.CANCELLED,
    }),
    LoanStatus.REPAID: frozenset(),
    LoanStatus.DEFAULTED: frozenset(),
    LoanStatus.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(
    status for status, exits in ALLOWED_TRANSITIONS.items() if not exits
)

# Fields each transition is allowed to set on the record
TRANSITION_FIELDS: dict[LoanStatus, frozenset[str]] = {
    LoanStatus.REPAID: frozenset({"repaid_at", "repayment_tx_hash"}),
    LoanStatus.DEFAULTED: frozenset({"defaulted_at", "failure_reason"}),
    LoanStatus.CANCELLED: frozenset({"cancelled_at", "refund_tx_hash"}),
}


def is_terminal(status: LoanStatus) -> bool:
    return status in TERMINAL_STATES


def check_transition(current: LoanStatus, requested: LoanStatus) -> dict | None:
    """Validate a status change against the state machine."""
    if requested not in ALLOWED_TRANSITIONS[current]:
        reason = (
            "terminal state" if is_terminal(current) else "transition not allowed"
        )
        return {
            "status": "error",
            "error_code": "INVALID_LOAN_TRANSITION",
            "message": f"Cannot move loan from {current.value} to {requested.value}: {reason}",
        }
    return None


def check_transition_fields(requested: LoanStatus, fields: dict) -> dict | None:
    """Only lifecycle fields belonging to the target state may be written."""
    unexpected = set(fields) - TRANSITION_FIELDS.get(requested, frozenset())
    if unexpected:
        return {
            "status": "error",
            "error_code": "INVALID_TRANSITION_FIELDS",
            "message": (
                f"Fields {sorted(unexpected)} cannot be set on transition "
                f"to {requested.value}"
            ),
        }
    return None
