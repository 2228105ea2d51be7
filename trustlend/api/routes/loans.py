"""Loans — origination, listing, status polling, early repayment, and cancellation.

Invariants:
    - Failed outcomes surface as their TrustLendError (status code from the error)
    - GET /loans/{id}/status never 404s: unknown ids report status "not_found"
    - Secrets in request bodies are converted to LedgerCredential and never logged
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from trustlend.api.dependencies import get_lending_service, outcome_or_raise
from trustlend.schemas.loan import DemoLoanCreate, LoanAction, LoanCreate
from trustlend.services.lending_service import LendingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/loans", tags=["loans"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    body: LoanCreate, service: LendingService = Depends(get_lending_service),
):
    outcome = await service.create_loan(
        body.borrower.to_credential(),
        body.lender.to_credential(),
        body.principal_amount,
        body.interest_rate,
        body.duration_seconds,
        body.terms,
    )
    return outcome_or_raise(outcome)


@router.post("/demo", status_code=status.HTTP_201_CREATED)
async def create_demo_loan(
    body: DemoLoanCreate, service: LendingService = Depends(get_lending_service),
):
    outcome = await service.create_demo_loan(
        body.borrower.to_credential(),
        body.lender.to_credential(),
        body.principal_amount,
        body.interest_rate,
    )
    return outcome_or_raise(outcome)


@router.get("")
async def list_loans(
    address: str = Query(min_length=1, max_length=128),
    service: LendingService = Depends(get_lending_service),
):
    loans = service.get_loans_for_address(address)
    return {"address": address, "loans": [loan.to_dict() for loan in loans]}


@router.get("/{loan_id}/status")
async def get_loan_status(
    loan_id: str, service: LendingService = Depends(get_lending_service),
):
    return service.get_loan_status(loan_id).to_dict()


@router.post("/{loan_id}/repay")
async def repay_loan(
    loan_id: str, body: LoanAction,
    service: LendingService = Depends(get_lending_service),
):
    """Manual early repayment. Mutually exclusive with the scheduled timer."""
    outcome = await service.repay_loan_early(loan_id, body.borrower.to_credential())
    return outcome_or_raise(outcome)


@router.post("/{loan_id}/cancel")
async def cancel_loan(
    loan_id: str, body: LoanAction,
    service: LendingService = Depends(get_lending_service),
):
    outcome = await service.cancel_loan(loan_id, body.borrower.to_credential())
    return outcome_or_raise(outcome)
