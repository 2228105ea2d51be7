"""Accounts — ledger account creation and per-address credit summaries.

Invariants:
    - POST /accounts returns the new account's secret once and never again
    - GET /accounts/{address} registers an unknown address with the starting score
"""

from fastapi import APIRouter, Depends, status

from trustlend.api.dependencies import get_lending_service
from trustlend.schemas.loan import AccountCreate, AccountResponse
from trustlend.services.lending_service import LendingService

router = APIRouter(prefix="/api/v1/accounts", tags=["accounts"])


@router.post(
    "", response_model=AccountResponse, status_code=status.HTTP_201_CREATED,
)
async def create_account(
    body: AccountCreate, service: LendingService = Depends(get_lending_service),
):
    """Create and faucet-fund a ledger account, then register its credit profile."""
    account = await service.create_account(body.label)
    profile = service.get_credit_profile(account.address)
    score = service.credit.score_of(profile)
    return AccountResponse(
        address=account.address,
        secret=account.secret,
        label=account.label,
        balance=account.balance,
        needs_funding=account.needs_funding,
        credit_score=score,
        credit_display=service.credit.format_credit_display(score),
    )


@router.get("/{address}")
async def get_account(
    address: str, service: LendingService = Depends(get_lending_service),
):
    summary = service.describe_credit(address)
    summary["balance"] = await service.ledger.get_account_balance(address)
    summary["loans"] = [
        loan.to_dict() for loan in service.get_loans_for_address(address)
    ]
    return summary
