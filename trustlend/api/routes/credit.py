"""Credit — tier table and eligibility checks (read-only)."""

from fastapi import APIRouter, Depends

from trustlend.api.dependencies import get_lending_service
from trustlend.schemas.loan import EligibilityRequest
from trustlend.services.lending_service import LendingService

router = APIRouter(prefix="/api/v1/credit", tags=["credit"])


@router.get("/tiers")
async def list_tiers(service: LendingService = Depends(get_lending_service)):
    return {"tiers": [tier.to_dict() for tier in service.credit_tiers()]}


@router.post("/eligibility")
async def check_eligibility(
    body: EligibilityRequest, service: LendingService = Depends(get_lending_service),
):
    """Eligibility never stores a profile; unknown addresses use the starting score."""
    return service.check_eligibility(body.address, body.amount).to_dict()
