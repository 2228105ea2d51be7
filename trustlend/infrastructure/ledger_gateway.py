"""Ledger Gateway — the capability the lending core needs from the payment rail.

Invariants:
    - Ledger rejection (non-success result code) is a PaymentReceipt with success=False
    - Connectivity failures raise LedgerConnectionError (core/errors.py)
    - get_account_balance returns "0" for unknown accounts instead of raising
    - Amounts cross this boundary in ledger units; balances are decimal strings

Design Decisions:
    - typing.Protocol over ABC: SimulatedLedger and ResilientLedgerGateway satisfy it structurally
"""

from dataclasses import dataclass
from typing import Protocol

SUCCESS_RESULT_CODE = "tesSUCCESS"


@dataclass(frozen=True)
class LedgerCredential:
    """Signing material for one account. secret is never logged or serialized."""
    address: str
    secret: str

    def __repr__(self) -> str:
        return f"LedgerCredential(address={self.address!r}, secret='***')"


@dataclass(frozen=True)
class PaymentReceipt:
    success: bool
    tx_hash: str | None
    result_code: str
    amount: float = 0.0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "tx_hash": self.tx_hash,
            "result_code": self.result_code,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class FundingStatus:
    address: str
    balance: str
    is_funded: bool

    def to_dict(self) -> dict:
        return {"address": self.address, "balance": self.balance, "is_funded": self.is_funded}


@dataclass
class AccountCredentials:
    address: str
    secret: str
    label: str
    balance: str = "0"
    needs_funding: bool = True

    @property
    def credential(self) -> LedgerCredential:
        return LedgerCredential(self.address, self.secret)


class LedgerGateway(Protocol):
    """Async ledger client consumed by origination and repayment."""

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def get_account_balance(self, address: str) -> str: ...

    async def check_and_update_funding(self, address: str) -> FundingStatus: ...

    async def send_payment(
        self, credential: LedgerCredential, to_address: str, amount: float,
    ) -> PaymentReceipt: ...

    async def create_account(self, label: str) -> AccountCredentials: ...

    async def fund_account(self, address: str) -> str: ...
