"""API Dependencies — request-scoped access to the process-wide LendingService.

Invariants:
    - One LendingService per app, built in the lifespan and stored on app.state
    - Routes never construct services themselves
"""

from fastapi import Request

from trustlend.core.outcomes import LoanOutcome
from trustlend.services.lending_service import LendingService


def get_lending_service(request: Request) -> LendingService:
    return request.app.state.lending


def outcome_or_raise(outcome: LoanOutcome) -> dict:
    """Successful outcome → response body; failed outcome → its TrustLendError."""
    if not outcome.success:
        raise outcome.error
    return outcome.to_response()
