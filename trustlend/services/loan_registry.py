"""Loan Registry — owns LoanRecords and the only API that mutates their status.

Invariants:
    - create() stores a new ACTIVE record under an id not already in use
    - transition() enforces the state machine (core/loan_state.py); terminal states never change
    - transition() writes only the lifecycle fields that belong to the target state
    - Stored records are frozen; transition() saves a replaced copy, so amounts and
      deadlines fixed at creation cannot be rewritten by callers
    - Every method is synchronous: a check-then-write never spans a suspension point
    - An id returned by reserve_id() is unique across stored AND reserved ids until
      create() consumes it or release_id() frees it

Design Decisions:
    - Loan id collisions are handled by reject-and-regenerate (bounded attempts)
      instead of assuming the time+random id is unique
    - Origination reserves the id before principal moves, so the only step after the
      transfer is a plain dict insert that cannot collide
"""

import logging
from dataclasses import replace
from typing import Callable

from trustlend.core.domain_types import LoanStatus
from trustlend.core.errors import (
    InvalidLoanTransitionError,
    LoanIdCollisionError,
    LoanNotFoundError,
)
from trustlend.core.loan_record import LoanRecord, generate_loan_id, new_loan_record
from trustlend.core.loan_state import check_transition, check_transition_fields
from trustlend.infrastructure.repository import InMemoryLoanRepository, LoanRepository

logger = logging.getLogger(__name__)


class LoanRegistry:
    def __init__(
        self,
        repository: LoanRepository | None = None,
        *,
        id_factory: Callable[[float], str] = generate_loan_id,
        max_id_attempts: int = 5,
    ):
        self._repo = repository if repository is not None else InMemoryLoanRepository()
        self._id_factory = id_factory
        self._max_id_attempts = max_id_attempts
        self._reserved: set[str] = set()

    # --- Id management ----------------------------------------------------------

    def reserve_id(self, now: float) -> str:
        for attempt in range(1, self._max_id_attempts + 1):
            candidate = self._id_factory(now)
            if candidate not in self._repo and candidate not in self._reserved:
                self._reserved.add(candidate)
                return candidate
            logger.warning(
                "Loan id collision, regenerating",
                extra={"loan_id": candidate, "attempt": attempt},
            )
        raise LoanIdCollisionError(self._max_id_attempts)

    def release_id(self, loan_id: str) -> None:
        self._reserved.discard(loan_id)

    # --- Creation and lookup ----------------------------------------------------

    def create(
        self,
        *,
        borrower_address: str,
        lender_address: str,
        principal_amount: float,
        interest_rate: float,
        duration_seconds: float,
        created_at: float,
        terms: str = "",
        tx_hash: str | None = None,
        loan_id: str | None = None,
    ) -> LoanRecord:
        if loan_id is None:
            loan_id = self.reserve_id(created_at)
        loan = new_loan_record(
            loan_id=loan_id,
            borrower_address=borrower_address,
            lender_address=lender_address,
            principal_amount=principal_amount,
            interest_rate=interest_rate,
            duration_seconds=duration_seconds,
            created_at=created_at,
            terms=terms,
            tx_hash=tx_hash,
        )
        self._repo.add(loan)
        self._reserved.discard(loan_id)
        logger.info(
            f"Loan registered: {loan.principal_amount} units, "
            f"repay {loan.total_repayment_amount} at {loan.execute_at}",
            extra={"loan_id": loan.id, "status": loan.status.value},
        )
        return loan

    def get(self, loan_id: str) -> LoanRecord | None:
        return self._repo.get(loan_id)

    def require(self, loan_id: str) -> LoanRecord:
        loan = self._repo.get(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    def list_all(self) -> list[LoanRecord]:
        return sorted(self._repo.values(), key=lambda loan: loan.created_at)

    def list_active(self) -> list[LoanRecord]:
        return [loan for loan in self.list_all() if loan.status == LoanStatus.ACTIVE]

    def list_for_party(self, address: str) -> list[LoanRecord]:
        return [loan for loan in self.list_all() if loan.involves(address)]

    # --- Lifecycle --------------------------------------------------------------

    def transition(self, loan_id: str, new_status: LoanStatus, **fields) -> LoanRecord:
        loan = self.require(loan_id)
        if check_transition(loan.status, new_status):
            raise InvalidLoanTransitionError(
                loan_id, loan.status.value, new_status.value,
            )
        error = check_transition_fields(new_status, fields)
        if error:
            raise ValueError(error["message"])
        previous = loan.status
        loan = replace(loan, status=new_status, **fields)
        self._repo.save(loan)
        logger.info(
            f"Loan {previous.value} -> {new_status.value}",
            extra={"loan_id": loan_id, "status": new_status.value},
        )
        return loan
