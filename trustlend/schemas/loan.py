"""Loan Schemas — Pydantic models for loan, credit, and account endpoints.

Invariants:
    - Amounts, rates, and durations are finite and within sane bounds before reaching services
    - Credential secrets are accepted on input only and never echoed in responses
    - Addresses are stripped and non-empty

Design Decisions:
    - Field constraints mirror LoanOriginationService validation so bad input fails
      with field-level details (400) before any ledger call
"""

from pydantic import BaseModel, Field, field_validator

from trustlend.infrastructure.ledger_gateway import LedgerCredential


class CredentialIn(BaseModel):
    """Signing credential for one ledger account."""
    address: str = Field(min_length=1, max_length=128)
    secret: str = Field(min_length=1, max_length=256)

    @field_validator("address")
    @classmethod
    def strip_address(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("address cannot be empty or whitespace")
        return v

    def to_credential(self) -> LedgerCredential:
        return LedgerCredential(self.address, self.secret)


class LoanCreate(BaseModel):
    borrower: CredentialIn
    lender: CredentialIn
    principal_amount: float = Field(gt=0, allow_inf_nan=False)
    interest_rate: float = Field(ge=0, le=1_000, allow_inf_nan=False)
    duration_seconds: float = Field(gt=0, allow_inf_nan=False)
    terms: str = Field("", max_length=2_000)


class DemoLoanCreate(BaseModel):
    borrower: CredentialIn
    lender: CredentialIn
    principal_amount: float = Field(gt=0, allow_inf_nan=False)
    interest_rate: float = Field(10, ge=0, le=1_000, allow_inf_nan=False)


class LoanAction(BaseModel):
    """Borrower credential for repay/cancel."""
    borrower: CredentialIn


class EligibilityRequest(BaseModel):
    address: str = Field(min_length=1, max_length=128)
    amount: float = Field(gt=0, allow_inf_nan=False)


class AccountCreate(BaseModel):
    label: str = Field(min_length=1, max_length=100)

    @field_validator("label")
    @classmethod
    def strip_label(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("label cannot be empty or whitespace")
        return v


class AccountResponse(BaseModel):
    """Newly created account. secret is returned exactly once, here."""
    address: str
    secret: str
    label: str
    balance: str
    needs_funding: bool
    credit_score: int
    credit_display: str
