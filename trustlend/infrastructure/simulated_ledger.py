"""Simulated Ledger — deterministic in-process payment rail implementing LedgerGateway.

Invariants:
    - Balances held as integer minor units (1 unit = 1,000,000) — no float drift
    - A payment debits amount + fee from the sender and credits amount to the receiver, or changes nothing
    - Every submitted payment (accepted or rejected) is appended to payments
    - Each async method yields to the event loop at least once (a real suspension point)

Design Decisions:
    - Result codes mirror XRPL transaction results (tesSUCCESS, tecUNFUNDED_PAYMENT, ...)
      so callers exercise the same rejection-vs-exception split as against a real rail
    - Failure injection (fail_next_payment, set_offline) lives here rather than in test mocks
"""

import asyncio
import hashlib
import itertools
import logging
import secrets
from dataclasses import dataclass

from trustlend.core.domain_types import from_minor_units, to_minor_units
from trustlend.core.errors import LedgerAccountNotFoundError, LedgerConnectionError
from trustlend.infrastructure.ledger_gateway import (
    SUCCESS_RESULT_CODE,
    AccountCredentials,
    FundingStatus,
    LedgerCredential,
    PaymentReceipt,
)

logger = logging.getLogger(__name__)

UNFUNDED = "tecUNFUNDED_PAYMENT"
NO_DESTINATION = "tecNO_DST"
BAD_AUTH = "tefBAD_AUTH"
BAD_AMOUNT = "temBAD_AMOUNT"


@dataclass
class _Account:
    address: str
    secret: str
    label: str
    balance: int = 0


@dataclass(frozen=True)
class PaymentRecord:
    tx_hash: str
    from_address: str
    to_address: str
    amount: float
    result_code: str


class SimulatedLedger:
    """In-memory ledger with faucet funding, fees, and failure injection."""

    def __init__(
        self,
        *,
        funding_threshold: float = 10.0,
        faucet_amount: float = 1000.0,
        fee_drops: int = 12,
        latency: float = 0.0,
    ):
        self.funding_threshold = funding_threshold
        self.faucet_amount = faucet_amount
        self.fee_drops = fee_drops
        self.latency = latency
        self.payments: list[PaymentRecord] = []
        self._accounts: dict[str, _Account] = {}
        self._connected = False
        self._offline = False
        self._forced_failures: list[str] = []
        self._tx_counter = itertools.count(1)

    # --- Lifecycle --------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        await self._round_trip("connect")
        if not self._connected:
            self._connected = True
            logger.info("Connected to simulated ledger")

    async def disconnect(self) -> None:
        if self._connected:
            self._connected = False
            logger.info("Disconnected from simulated ledger")

    # --- Failure injection ------------------------------------------------------

    def set_offline(self, offline: bool = True) -> None:
        """While offline, every request raises LedgerConnectionError."""
        self._offline = offline

    def fail_next_payment(self, result_code: str = UNFUNDED) -> None:
        """Reject the next submitted payment with result_code."""
        self._forced_failures.append(result_code)

    # --- Accounts ---------------------------------------------------------------

    async def create_account(self, label: str) -> AccountCredentials:
        await self._round_trip("create_account")
        address = "r" + secrets.token_hex(16)
        secret = "s" + secrets.token_hex(16)
        self._accounts[address] = _Account(address, secret, label)
        logger.info(f"Generated new account for {label}", extra={"address": address})
        return AccountCredentials(address=address, secret=secret, label=label)

    def open_account(self, label: str, balance: float = 0.0) -> AccountCredentials:
        """Synchronous account creation with an opening balance (fixtures, demos)."""
        address = "r" + secrets.token_hex(16)
        secret = "s" + secrets.token_hex(16)
        self._accounts[address] = _Account(address, secret, label, to_minor_units(balance))
        return AccountCredentials(
            address=address, secret=secret, label=label,
            balance=self._format(to_minor_units(balance)),
            needs_funding=balance < self.funding_threshold,
        )

    async def fund_account(self, address: str) -> str:
        await self._round_trip("fund_account")
        account = self._accounts.get(address)
        if account is None:
            raise LedgerAccountNotFoundError(address)
        account.balance += to_minor_units(self.faucet_amount)
        return self._format(account.balance)

    def set_balance(self, address: str, amount: float) -> None:
        self._accounts[address].balance = to_minor_units(amount)

    async def get_account_balance(self, address: str) -> str:
        await self._round_trip("get_account_balance")
        account = self._accounts.get(address)
        if account is None:
            return "0"
        return self._format(account.balance)

    async def check_and_update_funding(self, address: str) -> FundingStatus:
        balance = await self.get_account_balance(address)
        return FundingStatus(
            address=address,
            balance=balance,
            is_funded=float(balance) >= self.funding_threshold,
        )

    # --- Payments ---------------------------------------------------------------

    async def send_payment(
        self, credential: LedgerCredential, to_address: str, amount: float,
    ) -> PaymentReceipt:
        await self._round_trip("send_payment")
        tx_hash = self._next_tx_hash(credential.address, to_address, amount)
        result_code = self._settle(credential, to_address, amount)
        self.payments.append(PaymentRecord(
            tx_hash, credential.address, to_address, amount, result_code,
        ))
        success = result_code == SUCCESS_RESULT_CODE
        if not success:
            logger.warning(
                f"Payment rejected: {result_code}",
                extra={"address": credential.address, "result_code": result_code},
            )
        return PaymentReceipt(success, tx_hash, result_code, amount)

    def payments_between(self, from_address: str, to_address: str) -> list[PaymentRecord]:
        return [
            p for p in self.payments
            if p.from_address == from_address and p.to_address == to_address
        ]

    def _settle(self, credential: LedgerCredential, to_address: str, amount: float) -> str:
        if self._forced_failures:
            return self._forced_failures.pop(0)
        sender = self._accounts.get(credential.address)
        if sender is None or sender.secret != credential.secret:
            return BAD_AUTH
        receiver = self._accounts.get(to_address)
        if receiver is None:
            return NO_DESTINATION
        value = to_minor_units(amount)
        if value <= 0:
            return BAD_AMOUNT
        if sender.balance < value + self.fee_drops:
            return UNFUNDED
        sender.balance -= value + self.fee_drops
        receiver.balance += value
        return SUCCESS_RESULT_CODE

    # --- Internals --------------------------------------------------------------

    async def _round_trip(self, operation: str) -> None:
        await asyncio.sleep(self.latency)
        if self._offline:
            raise LedgerConnectionError("ledger unreachable", operation)

    def _next_tx_hash(self, sender: str, receiver: str, amount: float) -> str:
        seed = f"{next(self._tx_counter)}:{sender}:{receiver}:{amount}"
        return hashlib.sha256(seed.encode()).hexdigest().upper()

    @staticmethod
    def _format(minor_units: int) -> str:
        return f"{from_minor_units(minor_units):.6f}".rstrip("0").rstrip(".") or "0"
