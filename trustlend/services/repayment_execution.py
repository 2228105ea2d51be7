"""Repayment Execution — the single repayment attempt shared by timer and manual paths.

Invariants:
    - Called only after the caller won the scheduler claim for this loan
    - Exactly one ledger payment of total_repayment_amount, borrower -> lender
    - Success -> REPAID (repaid_at, repayment_tx_hash); rejection or any gateway
      exception -> DEFAULTED (defaulted_at, failure_reason). Never retried.
    - The event is published after the transition is stored
    - Never raises: every failure becomes a LoanOutcome
    - If writing lifecycle fields fails after the ledger call, the terminal status is
      still stored on its own; a claimed repayment does not leave the loan ACTIVE
"""

import logging

from trustlend.core.domain_types import LoanEventKind, LoanStatus, RepaymentTrigger
from trustlend.core.errors import (
    ErrorContext,
    LoanNotActiveError,
    LoanNotFoundError,
    RepaymentFailedError,
    SettlementError,
    TrustLendError,
)
from trustlend.core.loan_record import LoanRecord
from trustlend.core.outcomes import LoanOutcome
from trustlend.infrastructure.clock import Clock
from trustlend.infrastructure.ledger_gateway import (
    LedgerCredential,
    LedgerGateway,
    PaymentReceipt,
)
from trustlend.services.loan_events import LoanEvent, LoanEventBus
from trustlend.services.loan_registry import LoanRegistry

logger = logging.getLogger(__name__)


class RepaymentExecutor:
    def __init__(
        self,
        registry: LoanRegistry,
        ledger: LedgerGateway,
        events: LoanEventBus,
        clock: Clock,
    ):
        self._registry = registry
        self._ledger = ledger
        self._events = events
        self._clock = clock

    async def execute(
        self, loan_id: str, credential: LedgerCredential, trigger: RepaymentTrigger,
    ) -> LoanOutcome:
        loan = self._registry.get(loan_id)
        if loan is None:
            return LoanOutcome.failed(LoanNotFoundError(loan_id))
        if loan.status != LoanStatus.ACTIVE:
            return LoanOutcome.failed(
                LoanNotActiveError(loan_id, loan.status.value), loan,
            )

        try:
            receipt = await self._ledger.send_payment(
                credential, loan.lender_address, loan.total_repayment_amount,
            )
        except Exception as e:
            logger.error(
                f"Repayment submission failed: {e}", exc_info=True,
                extra={"loan_id": loan_id, "trigger": trigger.value},
            )
            return self._mark_defaulted(loan, str(e), None)

        if not receipt.success:
            return self._mark_defaulted(
                loan, f"ledger rejected payment ({receipt.result_code})",
                receipt.result_code,
            )
        return self._mark_repaid(loan, receipt, trigger)

    def _mark_repaid(
        self, loan: LoanRecord, receipt: PaymentReceipt, trigger: RepaymentTrigger,
    ) -> LoanOutcome:
        try:
            updated = self._settle(
                loan, LoanStatus.REPAID,
                repaid_at=self._clock.now(), repayment_tx_hash=receipt.tx_hash,
            )
        except TrustLendError as e:
            logger.error(
                f"Repayment settled but transition failed: {e.message}",
                extra={"loan_id": loan.id, "tx_hash": receipt.tx_hash, "error_code": e.code},
            )
            return LoanOutcome.failed(e, loan)
        effects = self._events.publish(LoanEvent(LoanEventKind.REPAID, updated))
        logger.info(
            f"Loan repaid ({trigger.value}): {updated.total_repayment_amount} units",
            extra={"loan_id": loan.id, "tx_hash": receipt.tx_hash, "trigger": trigger.value},
        )
        return LoanOutcome.ok(
            f"Loan repaid: {updated.total_repayment_amount} units sent to lender",
            updated, receipt.tx_hash, effects,
        )

    def _mark_defaulted(
        self, loan: LoanRecord, reason: str, result_code: str | None,
    ) -> LoanOutcome:
        error = RepaymentFailedError(
            reason, result_code, ErrorContext(loan_id=loan.id, address=loan.borrower_address),
        )
        try:
            updated = self._settle(
                loan, LoanStatus.DEFAULTED,
                defaulted_at=self._clock.now(), failure_reason=reason,
            )
        except TrustLendError as e:
            logger.error(
                f"Default transition failed: {e.message}",
                extra={"loan_id": loan.id, "error_code": e.code},
            )
            return LoanOutcome.failed(e, loan)
        effects = self._events.publish(LoanEvent(LoanEventKind.DEFAULTED, updated))
        logger.warning(
            f"Loan defaulted: {reason}",
            extra={"loan_id": loan.id, "result_code": result_code},
        )
        return LoanOutcome.failed(error, updated, effects)

    def _settle(self, loan: LoanRecord, status: LoanStatus, **fields) -> LoanRecord:
        """Store the terminal status the ledger outcome dictates.

        The scheduler entry is already claimed, so the loan must not stay ACTIVE.
        If writing the lifecycle fields fails unexpectedly, the status alone is stored.
        """
        try:
            return self._registry.transition(loan.id, status, **fields)
        except TrustLendError:
            raise
        except Exception as e:
            logger.error(
                f"Settlement to {status.value} failed, storing status only: {e}",
                exc_info=True, extra={"loan_id": loan.id, "status": status.value},
            )
        try:
            return self._registry.transition(loan.id, status)
        except TrustLendError:
            raise
        except Exception as e:
            raise SettlementError(loan.id, status.value, str(e)) from e
