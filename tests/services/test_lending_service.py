"""Lending Service — end-to-end lifecycle tests on a virtual timeline.

Tests cover:
    - Scheduled repayment at the deadline (repaid, +1 score)
    - Scheduled repayment that bounces (defaulted, -50 floored at 0)
    - Manual early repayment, including racing the timer (exactly one transition)
    - A failed lifecycle field write still settles the loan out of ACTIVE
    - Borrower-only cancellation before the deadline, with refund failure rollback
    - Status views, demo loans, account creation, and display helpers
"""

import asyncio

import pytest

from trustlend.core.domain_types import LoanStatus
from trustlend.infrastructure.ledger_gateway import LedgerCredential
from trustlend.infrastructure.simulated_ledger import UNFUNDED
from trustlend.services.lending_service import format_remaining


@pytest.fixture
async def loan(service, borrower, lender):
    outcome = await service.create_loan(borrower.credential, lender.credential, 10, 5, 10)
    assert outcome.success
    return outcome.loan


async def _run_until(service, clock, seconds):
    await clock.advance(seconds)
    await service.scheduler.drain()


# ─── Scheduled repayment ─────────────────────────────────────────

async def test_loan_repaid_at_deadline(service, clock, ledger, borrower, lender, loan):
    assert loan.total_repayment_amount == 10.5
    assert loan.status == LoanStatus.ACTIVE

    await _run_until(service, clock, 9)
    assert service.registry.get(loan.id).status == LoanStatus.ACTIVE

    await _run_until(service, clock, 1)
    repaid = service.registry.get(loan.id)
    assert repaid.status == LoanStatus.REPAID
    assert repaid.repaid_at == loan.execute_at
    assert repaid.repayment_tx_hash
    assert service.wallets.get(borrower.address).credit_score == 101
    payments = ledger.payments_between(borrower.address, lender.address)
    assert [p.amount for p in payments] == [10.5]


async def test_bounced_repayment_defaults_loan(service, clock, ledger, borrower, loan):
    ledger.set_balance(borrower.address, 5)
    await _run_until(service, clock, 10)

    defaulted = service.registry.get(loan.id)
    assert defaulted.status == LoanStatus.DEFAULTED
    assert defaulted.defaulted_at == loan.execute_at
    assert UNFUNDED in defaulted.failure_reason
    assert service.wallets.get(borrower.address).credit_score == 50


async def test_unreachable_ledger_at_deadline_defaults_loan(service, clock, ledger, loan):
    ledger.set_offline()
    await _run_until(service, clock, 10)
    ledger.set_offline(False)
    assert service.registry.get(loan.id).status == LoanStatus.DEFAULTED


async def test_default_penalty_floors_at_zero(service, clock, ledger, borrower, lender):
    service.register_wallet(borrower.address).credit_score = 30
    outcome = await service.create_loan(borrower.credential, lender.credential, 10, 5, 10)
    ledger.set_balance(borrower.address, 0)
    await _run_until(service, clock, 10)

    assert service.registry.get(outcome.loan.id).status == LoanStatus.DEFAULTED
    assert service.wallets.get(borrower.address).credit_score == 0


# ─── Manual repayment ────────────────────────────────────────────

async def test_early_repayment_then_timer_noop(service, clock, ledger, borrower, lender, loan):
    outcome = await service.repay_loan_early(loan.id, borrower.credential)
    assert outcome.success
    assert outcome.loan.status == LoanStatus.REPAID
    assert outcome.effects[0].new_score == 101

    await _run_until(service, clock, 10)
    assert len(ledger.payments_between(borrower.address, lender.address)) == 1
    assert service.wallets.get(borrower.address).credit_score == 101


@pytest.mark.parametrize("timer_first", [True, False])
async def test_manual_repay_racing_timer_transitions_once(
    service, clock, ledger, borrower, lender, loan, timer_first,
):
    fire = service.scheduler.fire(loan.id)
    manual = service.repay_loan_early(loan.id, borrower.credential)
    results = await asyncio.gather(*((fire, manual) if timer_first else (manual, fire)))

    await _run_until(service, clock, 10)
    assert service.registry.get(loan.id).status == LoanStatus.REPAID
    assert len(ledger.payments_between(borrower.address, lender.address)) == 1
    assert service.wallets.get(borrower.address).credit_score == 101
    successes = [r for r in results if r is not None and r.success]
    assert len(successes) == 1


async def test_early_repayment_requires_borrower(service, lender, loan):
    outcome = await service.repay_loan_early(loan.id, lender.credential)
    assert outcome.error_code == "UNAUTHORIZED_LOAN_ACTION"
    assert service.registry.get(loan.id).status == LoanStatus.ACTIVE
    assert service.scheduler.get_entry(loan.id).is_active


async def test_early_repayment_of_repaid_loan_rejected(service, borrower, loan):
    await service.repay_loan_early(loan.id, borrower.credential)
    outcome = await service.repay_loan_early(loan.id, borrower.credential)
    assert outcome.error_code == "LOAN_NOT_ACTIVE"


async def test_early_repayment_of_unknown_loan(service, borrower):
    outcome = await service.repay_loan_early("loan_missing", borrower.credential)
    assert outcome.error_code == "LOAN_NOT_FOUND"


async def test_bounced_early_repayment_defaults(service, ledger, borrower, loan):
    ledger.set_balance(borrower.address, 1)
    outcome = await service.repay_loan_early(loan.id, borrower.credential)
    assert not outcome.success
    assert outcome.error_code == "REPAYMENT_FAILED"
    assert outcome.loan.status == LoanStatus.DEFAULTED


async def test_settlement_field_failure_still_settles_loan(
    service, clock, borrower, loan, monkeypatch,
):
    original = service.registry.transition

    def fields_rejected(loan_id, new_status, **fields):
        if fields:
            raise ValueError("lifecycle field write failed")
        return original(loan_id, new_status)

    monkeypatch.setattr(service.registry, "transition", fields_rejected)
    await _run_until(service, clock, 10)

    settled = service.registry.get(loan.id)
    assert settled.status == LoanStatus.REPAID
    assert settled.repaid_at is None
    assert not service.scheduler.get_entry(loan.id).is_active
    assert service.wallets.get(borrower.address).credit_score == 101


async def test_unrecoverable_settlement_returns_outcome(service, borrower, loan, monkeypatch):
    def broken(loan_id, new_status, **fields):
        raise RuntimeError("repository offline")

    monkeypatch.setattr(service.registry, "transition", broken)
    outcome = await service.repay_loan_early(loan.id, borrower.credential)
    assert not outcome.success
    assert outcome.error_code == "SETTLEMENT_FAILED"


# ─── Cancellation ────────────────────────────────────────────────

async def test_cancel_refunds_principal(service, clock, ledger, borrower, lender, loan):
    outcome = await service.cancel_loan(loan.id, borrower.credential)
    assert outcome.success
    cancelled = outcome.loan
    assert cancelled.status == LoanStatus.CANCELLED
    assert cancelled.cancelled_at == clock.now()
    assert cancelled.refund_tx_hash == outcome.tx_hash

    await _run_until(service, clock, 10)
    payments = ledger.payments_between(borrower.address, lender.address)
    assert [p.amount for p in payments] == [10]
    assert service.registry.get(loan.id).status == LoanStatus.CANCELLED
    assert service.wallets.get(borrower.address).credit_score == 100


async def test_cancel_requires_borrower(service, lender, loan):
    outcome = await service.cancel_loan(loan.id, lender.credential)
    assert outcome.error_code == "UNAUTHORIZED_LOAN_ACTION"


async def test_cancel_after_deadline_rejected(service, clock, borrower, loan):
    service.scheduler.claim(loan.id)
    await _run_until(service, clock, 10)
    outcome = await service.cancel_loan(loan.id, borrower.credential)
    assert outcome.error_code == "INVALID_LOAN_TRANSITION"
    assert "before the repayment deadline" in outcome.to_response()["error"]["message"]


async def test_failed_refund_reinstates_schedule(service, clock, ledger, borrower, loan):
    ledger.fail_next_payment(UNFUNDED)
    outcome = await service.cancel_loan(loan.id, borrower.credential)
    assert outcome.error_code == "REFUND_FAILED"
    assert service.registry.get(loan.id).status == LoanStatus.ACTIVE
    assert service.scheduler.get_entry(loan.id).is_active

    await _run_until(service, clock, 10)
    assert service.registry.get(loan.id).status == LoanStatus.REPAID


@pytest.mark.parametrize("secret", ["sForged", "sécret"])
@pytest.mark.parametrize("action", ["repay_loan_early", "cancel_loan"])
async def test_forged_borrower_credential_rejected(
    service, ledger, borrower, loan, action, secret,
):
    forged = LedgerCredential(borrower.address, secret)
    outcome = await getattr(service, action)(loan.id, forged)
    assert outcome.error_code == "UNAUTHORIZED_LOAN_ACTION"
    assert service.registry.get(loan.id).status == LoanStatus.ACTIVE
    assert service.scheduler.get_entry(loan.id).is_active
    assert len(ledger.payments) == 1


# ─── Queries and helpers ─────────────────────────────────────────

async def test_status_of_unknown_loan_is_not_found(service):
    view = service.get_loan_status("loan_missing")
    assert view.status == "not_found"
    assert view.to_dict()["loan"] is None


async def test_status_reports_time_remaining(service, clock, loan):
    await clock.advance(4)
    view = service.get_loan_status(loan.id)
    assert view.status == "active"
    assert view.time_until_repayment == 6
    assert view.is_overdue is False


async def test_loans_listed_for_both_parties(service, borrower, lender, loan):
    assert service.get_loans_for_address(borrower.address) == [loan]
    assert service.get_loans_for_address(lender.address) == [loan]
    assert service.get_loans_for_address("rStranger") == []


async def test_demo_loan_uses_configured_duration(service, borrower, lender):
    outcome = await service.create_demo_loan(borrower.credential, lender.credential, 10)
    assert outcome.success
    assert outcome.loan.duration_seconds == 10
    assert outcome.loan.total_repayment_amount == 11
    assert "Demo loan" in outcome.loan.terms


async def test_create_account_registers_wallet(service):
    account = await service.create_account("alice")
    assert service.wallets.get(account.address).credit_score == 100
    assert service.wallets.get(account.address).label == "alice"


async def test_check_eligibility_does_not_store_profile(service):
    result = service.check_eligibility("rNewcomer", 10)
    assert result.eligible
    assert service.wallets.get("rNewcomer") is None


async def test_describe_credit(service, borrower):
    summary = service.describe_credit(borrower.address)
    assert summary["display"] == "100 (Starter)"
    assert summary["tier"]["label"] == "Starter"
    assert summary["progress"]["points_needed"] == 50


async def test_format_loan_info(service, loan):
    info = service.format_loan_info(loan)
    assert f"Loan ID: {loan.id}" in info
    assert "Total Repayment: 10.5 units" in info
    assert "Time Remaining: 10s" in info


def test_format_remaining():
    assert format_remaining(-1) == "Overdue"
    assert format_remaining(45) == "45s"
    assert format_remaining(125) == "2m 5s"
    assert format_remaining(3_725) == "1h 2m 5s"
    assert format_remaining(90_061) == "1d 1h 1m"


async def test_check_wallet_balance(service, lender):
    assert await service.check_wallet_balance(lender.address, 1_000)
    assert not await service.check_wallet_balance(lender.address, 1_000.01)
