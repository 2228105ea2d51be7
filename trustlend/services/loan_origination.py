"""Loan Origination — validates, moves principal, then records and schedules the loan.

Invariants:
    - Order: input validation -> credit eligibility -> lender balance -> principal payment
      -> registry insert -> scheduler registration
    - Any failure before the payment succeeds leaves no registry or scheduler state
    - Once principal has moved the loan IS recorded: the id is reserved up front and the
      remaining steps are in-memory inserts
    - Lender balance must cover principal + fee_buffer
    - No exception escapes create_loan(): TrustLendError and ledger failures become
      failed LoanOutcomes
"""

import logging
import math

from trustlend.core.credit_ledger import CreditLedger, WalletProfile
from trustlend.core.domain_types import LoanEventKind, round_amount
from trustlend.core.errors import (
    CreditLimitExceededError,
    ErrorContext,
    InsufficientLenderBalanceError,
    LedgerConnectionError,
    LoanValidationError,
    PaymentFailedError,
    TrustLendError,
)
from trustlend.core.outcomes import LoanOutcome
from trustlend.infrastructure.clock import Clock
from trustlend.infrastructure.ledger_gateway import (
    LedgerCredential,
    LedgerGateway,
    PaymentReceipt,
)
from trustlend.infrastructure.repository import WalletRepository
from trustlend.services.loan_events import LoanEvent, LoanEventBus
from trustlend.services.loan_registry import LoanRegistry
from trustlend.services.repayment_scheduler import RepaymentScheduler

logger = logging.getLogger(__name__)

MAX_TERMS_LENGTH = 2_000


class LoanOriginationService:
    def __init__(
        self,
        *,
        ledger: LedgerGateway,
        registry: LoanRegistry,
        scheduler: RepaymentScheduler,
        credit_ledger: CreditLedger,
        wallets: WalletRepository,
        events: LoanEventBus,
        clock: Clock,
        fee_buffer: float = 0.1,
    ):
        self._ledger = ledger
        self._registry = registry
        self._scheduler = scheduler
        self._credit = credit_ledger
        self._wallets = wallets
        self._events = events
        self._clock = clock
        self._fee_buffer = fee_buffer

    async def create_loan(
        self,
        borrower: LedgerCredential,
        lender: LedgerCredential,
        principal_amount: float,
        interest_rate: float,
        duration_seconds: float,
        terms: str = "",
    ) -> LoanOutcome:
        context = ErrorContext(address=borrower.address)
        loan_id = None
        try:
            _validate_request(
                borrower, lender, principal_amount, interest_rate,
                duration_seconds, terms, context,
            )
            self._check_eligibility(borrower.address, principal_amount, context)
            await self._check_lender_balance(lender.address, principal_amount)
            loan_id = self._registry.reserve_id(self._clock.now())
            receipt = await self._pay_principal(lender, borrower.address, principal_amount)
        except TrustLendError as e:
            if loan_id is not None:
                self._registry.release_id(loan_id)
            logger.warning(
                f"Loan origination rejected: {e.message}",
                extra={"address": borrower.address, "error_code": e.code},
            )
            return LoanOutcome.failed(e)

        loan = self._registry.create(
            loan_id=loan_id,
            borrower_address=borrower.address,
            lender_address=lender.address,
            principal_amount=principal_amount,
            interest_rate=interest_rate,
            duration_seconds=duration_seconds,
            created_at=self._clock.now(),
            terms=terms or "",
            tx_hash=receipt.tx_hash,
        )
        self._scheduler.schedule(loan.id, loan.execute_at, borrower)
        effects = self._events.publish(LoanEvent(LoanEventKind.CREATED, loan))
        logger.info(
            f"Loan originated: {loan.principal_amount} at {loan.interest_rate}% "
            f"for {loan.duration_seconds}s",
            extra={"loan_id": loan.id, "tx_hash": receipt.tx_hash},
        )
        return LoanOutcome.ok(
            f"Loan created. {loan.total_repayment_amount} units will be repaid "
            f"automatically in {loan.duration_seconds:g} seconds",
            loan, receipt.tx_hash, effects,
        )

    # --- Preconditions ----------------------------------------------------------

    def _check_eligibility(
        self, borrower_address: str, amount: float, context: ErrorContext,
    ) -> None:
        profile = self._wallets.get(borrower_address)
        if profile is None:
            profile = self._credit.initialize(WalletProfile(address=borrower_address))
            self._wallets.save(profile)
        result = self._credit.check_eligibility(profile, amount)
        if not result.eligible:
            raise CreditLimitExceededError(
                result.message, amount, result.tier.max_loan_amount, context,
            )

    async def _check_lender_balance(self, lender_address: str, principal: float) -> None:
        context = ErrorContext(address=lender_address)
        try:
            balance = float(await self._ledger.get_account_balance(lender_address))
        except TrustLendError:
            raise
        except Exception as e:
            logger.error(f"Unexpected ledger error: {e}", exc_info=True)
            raise LedgerConnectionError(str(e), "balance lookup", context) from e
        required = round_amount(principal + self._fee_buffer)
        if balance < required:
            raise InsufficientLenderBalanceError(balance, required, context)

    async def _pay_principal(
        self, lender: LedgerCredential, borrower_address: str, principal: float,
    ) -> PaymentReceipt:
        context = ErrorContext(address=lender.address)
        try:
            receipt = await self._ledger.send_payment(lender, borrower_address, principal)
        except LedgerConnectionError as e:
            raise PaymentFailedError(e.message, None, context) from e
        except Exception as e:
            logger.error(f"Unexpected ledger error: {e}", exc_info=True)
            raise PaymentFailedError(str(e), None, context) from e
        if not receipt.success:
            raise PaymentFailedError(
                f"ledger rejected payment ({receipt.result_code})",
                receipt.result_code, context,
            )
        return receipt


def _validate_request(
    borrower: LedgerCredential,
    lender: LedgerCredential,
    principal: float,
    rate: float,
    duration: float,
    terms: str,
    context: ErrorContext,
) -> None:
    if not borrower.address:
        raise LoanValidationError("Borrower address is required", "borrower", context)
    if not lender.address:
        raise LoanValidationError("Lender address is required", "lender", context)
    if borrower.address == lender.address:
        raise LoanValidationError(
            "Borrower and lender must be different accounts", "lender", context,
        )
    if not _finite(principal) or principal <= 0:
        raise LoanValidationError(
            "Principal amount must be a positive number", "principal_amount", context,
        )
    if not _finite(rate) or rate < 0:
        raise LoanValidationError(
            "Interest rate must be zero or positive", "interest_rate", context,
        )
    if not _finite(duration) or duration <= 0:
        raise LoanValidationError(
            "Duration must be a positive number of seconds", "duration_seconds", context,
        )
    if len(terms or "") > MAX_TERMS_LENGTH:
        raise LoanValidationError(
            f"Terms cannot exceed {MAX_TERMS_LENGTH} characters", "terms", context,
        )


def _finite(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)
