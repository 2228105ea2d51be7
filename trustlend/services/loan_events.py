"""Loan Events — post-transition notification hook with explicit, ordered listeners.

Invariants:
    - Events are published only after the registry transition has been stored
    - Listeners run in the order given at construction; no runtime registration
    - A failing listener is logged with traceback and never undoes the transition
      or stops later listeners
    - publish() returns the effects produced by listeners (e.g. CreditUpdate)

Design Decisions:
    - Observer interface instead of a settable callback: the full listener list is
      visible where the service is assembled
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from trustlend.core.credit_ledger import CreditLedger, CreditUpdate, WalletProfile
from trustlend.core.domain_types import LoanEventKind
from trustlend.core.loan_record import LoanRecord
from trustlend.infrastructure.repository import WalletRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoanEvent:
    kind: LoanEventKind
    loan: LoanRecord


class LoanEventListener(Protocol):
    def handle(self, event: LoanEvent) -> Any: ...


class LoanEventBus:
    def __init__(self, listeners: list[LoanEventListener] | None = None):
        self._listeners = list(listeners or [])

    @property
    def listeners(self) -> tuple[LoanEventListener, ...]:
        return tuple(self._listeners)

    def publish(self, event: LoanEvent) -> list[Any]:
        effects = []
        for listener in self._listeners:
            try:
                effect = listener.handle(event)
            except Exception as e:
                logger.error(
                    f"Listener {type(listener).__name__} failed on {event.kind.value}: {e}",
                    exc_info=True,
                    extra={"loan_id": event.loan.id},
                )
                continue
            if effect is not None:
                effects.append(effect)
        return effects


class CreditScoreListener:
    """Adjusts the borrower's stored credit score on repayment or default."""

    def __init__(self, credit_ledger: CreditLedger, wallets: WalletRepository):
        self._credit = credit_ledger
        self._wallets = wallets

    def handle(self, event: LoanEvent) -> CreditUpdate | None:
        if event.kind not in (LoanEventKind.REPAID, LoanEventKind.DEFAULTED):
            return None
        address = event.loan.borrower_address
        profile = self._wallets.get(address)
        if profile is None:
            profile = self._credit.initialize(WalletProfile(address=address))
        if event.kind == LoanEventKind.REPAID:
            update = self._credit.apply_repayment_bonus(
                profile, event.loan.principal_amount,
            )
        else:
            update = self._credit.apply_default_penalty(profile)
        self._wallets.save(profile)
        logger.info(
            f"Credit score {update.old_score} -> {update.new_score} "
            f"({update.new_tier.label}, max loan {update.new_tier.max_loan_amount})",
            extra={"loan_id": event.loan.id, "address": address},
        )
        return update
