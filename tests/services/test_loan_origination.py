"""Loan Origination — tests for preconditions and all-or-nothing origination.

Tests cover:
    - Successful origination moves principal, records an ACTIVE loan, arms the scheduler
    - Eligibility, lender balance, and input validation failures touch nothing
    - A rejected or unreachable principal payment leaves no records for either party
    - Any exception or garbled value from the lender balance read becomes a failed outcome
"""

import math

import pytest

from trustlend.core.domain_types import LoanStatus
from trustlend.infrastructure.ledger_gateway import LedgerCredential
from trustlend.infrastructure.simulated_ledger import UNFUNDED


def _assert_nothing_recorded(service, borrower, lender):
    assert service.get_loans_for_address(borrower.address) == []
    assert service.get_loans_for_address(lender.address) == []
    assert service.scheduler.pending_entries() == []
    assert service.registry._reserved == set()


async def test_successful_origination(service, ledger, borrower, lender):
    outcome = await service.create_loan(
        borrower.credential, lender.credential, 10, 5, 10, "Pay me back",
    )
    assert outcome.success
    loan = outcome.loan
    assert loan.status == LoanStatus.ACTIVE
    assert loan.total_repayment_amount == 10.5
    assert loan.terms == "Pay me back"
    assert loan.tx_hash == outcome.tx_hash
    assert "10.5" in outcome.message
    assert await ledger.get_account_balance(borrower.address) == "110"
    assert [e.loan_id for e in service.scheduler.pending_entries()] == [loan.id]


async def test_unknown_borrower_gets_starting_profile(service, borrower, lender):
    await service.create_loan(borrower.credential, lender.credential, 5, 0, 10)
    assert service.wallets.get(borrower.address).credit_score == 100


async def test_amount_over_tier_limit_rejected(service, ledger, borrower, lender):
    outcome = await service.create_loan(borrower.credential, lender.credential, 11, 5, 10)
    assert not outcome.success
    assert outcome.error_code == "CREDIT_LIMIT_EXCEEDED"
    assert "Bronze" in outcome.message
    assert ledger.payments == []
    _assert_nothing_recorded(service, borrower, lender)


async def test_lender_must_cover_fee_buffer(service, ledger, borrower, lender):
    ledger.set_balance(lender.address, 10.05)
    outcome = await service.create_loan(borrower.credential, lender.credential, 10, 5, 10)
    assert outcome.error_code == "INSUFFICIENT_LENDER_BALANCE"
    assert ledger.payments == []


async def test_rejected_principal_payment_leaves_no_records(service, ledger, borrower, lender):
    ledger.fail_next_payment(UNFUNDED)
    outcome = await service.create_loan(borrower.credential, lender.credential, 10, 5, 10)
    assert outcome.error_code == "PAYMENT_FAILED"
    assert outcome.error.result_code == UNFUNDED
    _assert_nothing_recorded(service, borrower, lender)


async def test_unreachable_ledger_leaves_no_records(service, ledger, borrower, lender):
    ledger.set_offline()
    outcome = await service.create_loan(borrower.credential, lender.credential, 10, 5, 10)
    assert not outcome.success
    assert outcome.error_code == "LEDGER_UNAVAILABLE"
    ledger.set_offline(False)
    _assert_nothing_recorded(service, borrower, lender)


@pytest.mark.parametrize("failure", [OSError("socket reset"), TimeoutError()])
async def test_balance_read_failure_becomes_failed_outcome(
    service, ledger, borrower, lender, monkeypatch, failure,
):
    async def broken_balance(address):
        raise failure

    monkeypatch.setattr(ledger, "get_account_balance", broken_balance)
    outcome = await service.create_loan(borrower.credential, lender.credential, 10, 5, 10)
    assert not outcome.success
    assert outcome.error_code == "LEDGER_UNAVAILABLE"
    assert ledger.payments == []
    _assert_nothing_recorded(service, borrower, lender)


async def test_malformed_balance_becomes_failed_outcome(
    service, ledger, borrower, lender, monkeypatch,
):
    async def garbled_balance(address):
        return "not-a-number"

    monkeypatch.setattr(ledger, "get_account_balance", garbled_balance)
    outcome = await service.create_loan(borrower.credential, lender.credential, 10, 5, 10)
    assert outcome.error_code == "LEDGER_UNAVAILABLE"
    _assert_nothing_recorded(service, borrower, lender)


@pytest.mark.parametrize("principal,rate,duration,field_name", [
    (0, 5, 10, "principal_amount"),
    (-1, 5, 10, "principal_amount"),
    (math.nan, 5, 10, "principal_amount"),
    (5, -1, 10, "interest_rate"),
    (5, 5, 0, "duration_seconds"),
    (5, 5, math.inf, "duration_seconds"),
])
async def test_invalid_terms_rejected(
    service, ledger, borrower, lender, principal, rate, duration, field_name,
):
    outcome = await service.create_loan(
        borrower.credential, lender.credential, principal, rate, duration,
    )
    assert outcome.error_code == "VALIDATION_ERROR"
    assert outcome.error.field == field_name
    assert ledger.payments == []


async def test_same_party_rejected(service, borrower):
    outcome = await service.create_loan(borrower.credential, borrower.credential, 5, 5, 10)
    assert outcome.error_code == "VALIDATION_ERROR"


async def test_empty_lender_address_rejected(service, borrower):
    outcome = await service.create_loan(
        borrower.credential, LedgerCredential("", "sSecret"), 5, 5, 10,
    )
    assert outcome.error.field == "lender"


async def test_terms_too_long_rejected(service, borrower, lender):
    outcome = await service.create_loan(
        borrower.credential, lender.credential, 5, 5, 10, "x" * 2_001,
    )
    assert outcome.error.field == "terms"
