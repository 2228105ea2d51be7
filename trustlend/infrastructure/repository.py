"""Repositories — key-value storage interfaces for loans and wallet credit profiles.

Invariants:
    - Loans keyed by loan id, wallet profiles keyed by ledger address
    - All operations are synchronous: no await between read and write, so each call
      is atomic on a single event loop
    - In-memory only: nothing survives a process restart

Design Decisions:
    - Protocols so a durable backend can replace the dict without touching loan logic
"""

from typing import Iterator, Protocol

from trustlend.core.credit_ledger import WalletProfile
from trustlend.core.loan_record import LoanRecord


class LoanRepository(Protocol):
    def get(self, loan_id: str) -> LoanRecord | None: ...

    def add(self, loan: LoanRecord) -> None: ...

    def save(self, loan: LoanRecord) -> None: ...

    def __contains__(self, loan_id: object) -> bool: ...

    def values(self) -> Iterator[LoanRecord]: ...


class WalletRepository(Protocol):
    def get(self, address: str) -> WalletProfile | None: ...

    def save(self, profile: WalletProfile) -> None: ...

    def values(self) -> Iterator[WalletProfile]: ...


class InMemoryLoanRepository:
    def __init__(self):
        self._loans: dict[str, LoanRecord] = {}

    def get(self, loan_id: str) -> LoanRecord | None:
        return self._loans.get(loan_id)

    def add(self, loan: LoanRecord) -> None:
        if loan.id in self._loans:
            raise KeyError(f"Loan '{loan.id}' already stored")
        self._loans[loan.id] = loan

    def save(self, loan: LoanRecord) -> None:
        self._loans[loan.id] = loan

    def __contains__(self, loan_id: object) -> bool:
        return loan_id in self._loans

    def __len__(self) -> int:
        return len(self._loans)

    def values(self) -> Iterator[LoanRecord]:
        return iter(list(self._loans.values()))


class InMemoryWalletRepository:
    def __init__(self):
        self._wallets: dict[str, WalletProfile] = {}

    def get(self, address: str) -> WalletProfile | None:
        return self._wallets.get(address)

    def save(self, profile: WalletProfile) -> None:
        self._wallets[profile.address] = profile

    def values(self) -> Iterator[WalletProfile]:
        return iter(list(self._wallets.values()))
