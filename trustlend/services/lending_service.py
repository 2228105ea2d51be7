"""Lending Service — the operations exposed to API/CLI callers, and their assembly.

Invariants:
    - Every public operation returns a LoanOutcome / view object; none raises TrustLendError
    - Manual repayment and cancellation win the scheduler claim BEFORE touching the ledger,
      so they are mutually exclusive with the timer
    - Only the borrower may repay early or cancel: the credential must match the
      borrower address and the credential stored with the scheduled repayment
    - Cancellation is only possible before execute_at; a failed refund reinstates the
      scheduled repayment and leaves the loan active
    - get_loan_status() of an unknown id reports status "not_found" instead of failing

Design Decisions:
    - create_lending_service() is the single place where collaborators are wired,
      including the ordered event listener list
"""

import hmac
import logging
from dataclasses import dataclass

from trustlend.config import Settings
from trustlend.core.credit_ledger import (
    CreditLedger,
    EligibilityResult,
    WalletProfile,
)
from trustlend.core.domain_types import (
    DEFAULT_CREDIT_TIERS,
    CreditTier,
    LoanEventKind,
    LoanStatus,
    RepaymentTrigger,
)
from trustlend.core.errors import (
    ErrorContext,
    InvalidLoanTransitionError,
    LoanNotActiveError,
    RefundFailedError,
    TrustLendError,
    UnauthorizedLoanActionError,
)
from trustlend.core.loan_record import LoanRecord
from trustlend.core.outcomes import LoanOutcome
from trustlend.infrastructure.clock import Clock, SystemClock
from trustlend.infrastructure.ledger_gateway import (
    AccountCredentials,
    LedgerCredential,
    LedgerGateway,
)
from trustlend.infrastructure.repository import (
    InMemoryLoanRepository,
    InMemoryWalletRepository,
    LoanRepository,
    WalletRepository,
)
from trustlend.infrastructure.resilient_gateway import ResilientLedgerGateway
from trustlend.infrastructure.simulated_ledger import SimulatedLedger
from trustlend.services.loan_events import CreditScoreListener, LoanEvent, LoanEventBus
from trustlend.services.loan_origination import LoanOriginationService
from trustlend.services.loan_registry import LoanRegistry
from trustlend.services.repayment_execution import RepaymentExecutor
from trustlend.services.repayment_scheduler import RepaymentScheduler

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"


@dataclass(frozen=True)
class LoanStatusView:
    status: str
    loan: LoanRecord | None = None
    time_until_repayment: float | None = None
    is_overdue: bool | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "loan": self.loan.to_dict() if self.loan else None,
            "time_until_repayment": self.time_until_repayment,
            "is_overdue": self.is_overdue,
        }


class LendingService:
    def __init__(
        self,
        *,
        ledger: LedgerGateway,
        clock: Clock,
        registry: LoanRegistry,
        scheduler: RepaymentScheduler,
        executor: RepaymentExecutor,
        origination: LoanOriginationService,
        credit_ledger: CreditLedger,
        wallets: WalletRepository,
        events: LoanEventBus,
        demo_duration_seconds: int = 10,
    ):
        self.ledger = ledger
        self.clock = clock
        self.registry = registry
        self.scheduler = scheduler
        self.executor = executor
        self.origination = origination
        self.credit = credit_ledger
        self.wallets = wallets
        self.events = events
        self.demo_duration_seconds = demo_duration_seconds

    # --- Lifecycle --------------------------------------------------------------

    async def start(self) -> None:
        await self.ledger.connect()
        logger.info("Lending service started")

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        await self.ledger.disconnect()
        logger.info("Lending service stopped")

    # --- Accounts and credit ----------------------------------------------------

    async def create_account(self, label: str) -> AccountCredentials:
        account = await self.ledger.create_account(label)
        self.register_wallet(account.address, label)
        return account

    def register_wallet(self, address: str, label: str = "") -> WalletProfile:
        """Store a credit profile for address if none exists. Idempotent."""
        profile = self.wallets.get(address)
        if profile is None:
            profile = WalletProfile(address=address, label=label)
        self.credit.initialize(profile)
        self.wallets.save(profile)
        return profile

    def get_credit_profile(self, address: str) -> WalletProfile:
        return self.register_wallet(address)

    def describe_credit(self, address: str) -> dict:
        profile = self.get_credit_profile(address)
        score = self.credit.score_of(profile)
        return {
            **profile.to_dict(),
            "display": self.credit.format_credit_display(score),
            "tier": self.credit.get_tier(score).to_dict(),
            "progress": self.credit.progress_to_next_tier(score).to_dict(),
        }

    def credit_tiers(self) -> list[CreditTier]:
        return self.credit.all_tiers()

    def check_eligibility(self, address: str, amount: float) -> EligibilityResult:
        profile = self.wallets.get(address)
        if profile is None:
            profile = self.credit.initialize(WalletProfile(address=address))
        return self.credit.check_eligibility(profile, amount)

    async def check_wallet_balance(self, address: str, required_amount: float) -> bool:
        balance = await self.ledger.get_account_balance(address)
        return float(balance) >= required_amount

    # --- Loans ------------------------------------------------------------------

    async def create_loan(
        self,
        borrower: LedgerCredential,
        lender: LedgerCredential,
        principal_amount: float,
        interest_rate: float,
        duration_seconds: float,
        terms: str = "",
    ) -> LoanOutcome:
        return await self.origination.create_loan(
            borrower, lender, principal_amount, interest_rate, duration_seconds, terms,
        )

    async def create_demo_loan(
        self,
        borrower: LedgerCredential,
        lender: LedgerCredential,
        principal_amount: float,
        interest_rate: float = 10,
    ) -> LoanOutcome:
        """Short loan that repays itself after demo_duration_seconds."""
        return await self.origination.create_loan(
            borrower, lender, principal_amount, interest_rate,
            self.demo_duration_seconds,
            f"Demo loan - auto-repayment in {self.demo_duration_seconds} seconds",
        )

    def get_loans_for_address(self, address: str) -> list[LoanRecord]:
        return self.registry.list_for_party(address)

    def get_loan_status(self, loan_id: str) -> LoanStatusView:
        loan = self.registry.get(loan_id)
        if loan is None:
            return LoanStatusView(status=NOT_FOUND)
        remaining = loan.execute_at - self.clock.now()
        return LoanStatusView(
            status=loan.status.value,
            loan=loan,
            time_until_repayment=max(0.0, remaining),
            is_overdue=remaining < 0,
        )

    async def repay_loan_early(
        self, loan_id: str, credential: LedgerCredential,
    ) -> LoanOutcome:
        try:
            loan = self._require_borrower_action(loan_id, credential, "repay")
        except TrustLendError as e:
            return LoanOutcome.failed(e, self.registry.get(loan_id))
        if not self.scheduler.cancel(loan_id):
            return LoanOutcome.failed(
                LoanNotActiveError(loan_id, "repayment already in progress"), loan,
            )
        return await self.executor.execute(loan_id, credential, RepaymentTrigger.MANUAL)

    async def cancel_loan(
        self, loan_id: str, credential: LedgerCredential,
    ) -> LoanOutcome:
        try:
            loan = self._require_borrower_action(loan_id, credential, "cancel")
        except TrustLendError as e:
            return LoanOutcome.failed(e, self.registry.get(loan_id))
        if self.clock.now() >= loan.execute_at:
            return LoanOutcome.failed(
                InvalidLoanTransitionError(
                    loan_id, loan.status.value, LoanStatus.CANCELLED.value,
                    ErrorContext(
                        user_message="Loans can only be cancelled before the repayment deadline",
                    ),
                ),
                loan,
            )
        if not self.scheduler.cancel(loan_id):
            return LoanOutcome.failed(
                LoanNotActiveError(loan_id, "repayment already in progress"), loan,
            )

        context = ErrorContext(loan_id=loan_id, address=credential.address)
        try:
            receipt = await self.ledger.send_payment(
                credential, loan.lender_address, loan.principal_amount,
            )
        except Exception as e:
            logger.error(
                f"Cancellation refund submission failed: {e}", exc_info=True,
                extra={"loan_id": loan_id},
            )
            self.scheduler.reinstate(loan_id)
            return LoanOutcome.failed(RefundFailedError(str(e), None, context), loan)
        if not receipt.success:
            self.scheduler.reinstate(loan_id)
            return LoanOutcome.failed(
                RefundFailedError(
                    f"ledger rejected refund ({receipt.result_code})",
                    receipt.result_code, context,
                ),
                loan,
            )

        updated = self.registry.transition(
            loan_id, LoanStatus.CANCELLED,
            cancelled_at=self.clock.now(), refund_tx_hash=receipt.tx_hash,
        )
        effects = self.events.publish(LoanEvent(LoanEventKind.CANCELLED, updated))
        logger.info(
            "Loan cancelled, principal refunded",
            extra={"loan_id": loan_id, "tx_hash": receipt.tx_hash},
        )
        return LoanOutcome.ok(
            f"Loan cancelled; {updated.principal_amount} units refunded to lender",
            updated, receipt.tx_hash, effects,
        )

    def format_loan_info(self, loan: LoanRecord) -> str:
        remaining = loan.execute_at - self.clock.now()
        lines = [
            f"Loan ID: {loan.id}",
            f"Principal: {loan.principal_amount} units",
            f"Interest Rate: {loan.interest_rate}%",
            f"Total Repayment: {loan.total_repayment_amount} units",
            f"Status: {loan.status.value}",
            f"Time Remaining: {format_remaining(remaining)}",
            f"Borrower: {loan.borrower_address}",
            f"Lender: {loan.lender_address}",
        ]
        if loan.terms:
            lines.append(f"Terms: {loan.terms}")
        return "\n".join(lines)

    def _require_borrower_action(
        self, loan_id: str, credential: LedgerCredential, action: str,
    ) -> LoanRecord:
        loan = self.registry.require(loan_id)
        entry = self.scheduler.get_entry(loan_id)
        # the stored repayment credential is the borrower's proof of identity
        forged = entry is not None and not hmac.compare_digest(
            entry.credential.secret.encode(), credential.secret.encode(),
        )
        if credential.address != loan.borrower_address or forged:
            raise UnauthorizedLoanActionError(
                action, ErrorContext(loan_id=loan_id, address=credential.address),
            )
        if loan.status != LoanStatus.ACTIVE:
            raise LoanNotActiveError(loan_id, loan.status.value)
        return loan


def format_remaining(seconds: float) -> str:
    if seconds <= 0:
        return "Overdue"
    total = int(seconds)
    days, rest = divmod(total, 86_400)
    hours, rest = divmod(rest, 3_600)
    minutes, secs = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def create_lending_service(
    settings: Settings,
    *,
    ledger: LedgerGateway | None = None,
    clock: Clock | None = None,
    tiers: tuple[CreditTier, ...] = DEFAULT_CREDIT_TIERS,
    loan_repository: LoanRepository | None = None,
    wallet_repository: WalletRepository | None = None,
) -> LendingService:
    """Wire every collaborator. Defaults: SimulatedLedger behind the resilient wrapper."""
    clock = clock or SystemClock()
    if ledger is None:
        ledger = ResilientLedgerGateway(
            SimulatedLedger(
                funding_threshold=settings.funding_threshold,
                faucet_amount=settings.faucet_amount,
                fee_drops=settings.payment_fee_drops,
            ),
            clock=clock,
            max_retries=settings.ledger_max_retries,
            base_delay_ms=settings.ledger_base_delay_ms,
            max_delay_ms=settings.ledger_max_delay_ms,
            funding_attempts=settings.account_funding_attempts,
            funding_backoff_ms=settings.account_funding_backoff_ms,
        )
    credit_ledger = CreditLedger(
        tiers,
        starting_score=settings.starting_credit_score,
        bonus_policy=settings.credit_bonus_policy,
        repayment_bonus_points=settings.repayment_bonus_points,
        default_penalty_points=settings.default_penalty_points,
        points_per_unit=settings.credit_points_per_unit,
        min_credit_gain=settings.min_credit_gain,
        max_credit_gain=settings.max_credit_gain,
    )
    wallets = wallet_repository if wallet_repository is not None else InMemoryWalletRepository()
    registry = LoanRegistry(
        loan_repository if loan_repository is not None else InMemoryLoanRepository(),
        max_id_attempts=settings.loan_id_max_attempts,
    )
    events = LoanEventBus([CreditScoreListener(credit_ledger, wallets)])
    executor = RepaymentExecutor(registry, ledger, events, clock)
    scheduler = RepaymentScheduler(clock, executor.execute)
    origination = LoanOriginationService(
        ledger=ledger,
        registry=registry,
        scheduler=scheduler,
        credit_ledger=credit_ledger,
        wallets=wallets,
        events=events,
        clock=clock,
        fee_buffer=settings.origination_fee_buffer,
    )
    return LendingService(
        ledger=ledger,
        clock=clock,
        registry=registry,
        scheduler=scheduler,
        executor=executor,
        origination=origination,
        credit_ledger=credit_ledger,
        wallets=wallets,
        events=events,
        demo_duration_seconds=settings.demo_loan_duration_seconds,
    )
