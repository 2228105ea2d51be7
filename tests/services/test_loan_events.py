"""Loan Events — tests for ordered listeners, failure isolation, and credit updates."""

from dataclasses import replace

from trustlend.core.credit_ledger import CreditLedger, CreditUpdate, WalletProfile
from trustlend.core.domain_types import LoanEventKind, LoanStatus
from trustlend.core.loan_record import new_loan_record
from trustlend.infrastructure.repository import InMemoryWalletRepository
from trustlend.services.loan_events import CreditScoreListener, LoanEvent, LoanEventBus


def _loan(status=LoanStatus.REPAID):
    loan = new_loan_record(
        loan_id="loan_1_abc", borrower_address="rBorrower", lender_address="rLender",
        principal_amount=30, interest_rate=5, duration_seconds=10, created_at=0,
    )
    return replace(loan, status=status)


class RecordingListener:
    def __init__(self, name, log):
        self.name = name
        self.log = log

    def handle(self, event):
        self.log.append(self.name)
        return self.name


class ExplodingListener:
    def handle(self, event):
        raise RuntimeError("boom")


def test_listeners_run_in_order_and_return_effects():
    log = []
    bus = LoanEventBus([RecordingListener("a", log), RecordingListener("b", log)])
    effects = bus.publish(LoanEvent(LoanEventKind.CREATED, _loan(LoanStatus.ACTIVE)))
    assert log == ["a", "b"]
    assert effects == ["a", "b"]


def test_failing_listener_does_not_stop_others(caplog):
    log = []
    bus = LoanEventBus([ExplodingListener(), RecordingListener("after", log)])
    effects = bus.publish(LoanEvent(LoanEventKind.REPAID, _loan()))
    assert effects == ["after"]
    assert "ExplodingListener failed" in caplog.text


def test_repaid_event_applies_bonus_to_stored_profile():
    wallets = InMemoryWalletRepository()
    wallets.save(WalletProfile("rBorrower", credit_score=100))
    listener = CreditScoreListener(CreditLedger(), wallets)

    update = listener.handle(LoanEvent(LoanEventKind.REPAID, _loan()))
    assert isinstance(update, CreditUpdate)
    assert update.new_score == 101
    assert wallets.get("rBorrower").credit_score == 101


def test_scaled_policy_uses_principal():
    wallets = InMemoryWalletRepository()
    listener = CreditScoreListener(CreditLedger(bonus_policy="scaled"), wallets)
    update = listener.handle(LoanEvent(LoanEventKind.REPAID, _loan()))
    assert update.new_score == 160


def test_defaulted_event_applies_penalty_to_missing_profile():
    wallets = InMemoryWalletRepository()
    listener = CreditScoreListener(CreditLedger(), wallets)
    update = listener.handle(LoanEvent(LoanEventKind.DEFAULTED, _loan(LoanStatus.DEFAULTED)))
    assert update.new_score == 50
    assert wallets.get("rBorrower").credit_score == 50


def test_created_and_cancelled_events_ignored():
    wallets = InMemoryWalletRepository()
    listener = CreditScoreListener(CreditLedger(), wallets)
    assert listener.handle(LoanEvent(LoanEventKind.CREATED, _loan(LoanStatus.ACTIVE))) is None
    assert listener.handle(LoanEvent(LoanEventKind.CANCELLED, _loan(LoanStatus.CANCELLED))) is None
    assert wallets.get("rBorrower") is None
