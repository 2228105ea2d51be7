"""Resilient Ledger Gateway — wraps any LedgerGateway with retry, backoff, and funding retry.

Invariants:
    - Read calls (balance, funding status): retry LedgerConnectionError up to max_retries
      with exponential backoff and ±25% jitter, then re-raise
    - send_payment is NEVER retried: a timed-out submission may still have been applied
    - create_account: bounded faucet attempts with fixed backoff; exhaustion returns the
      account with needs_funding=True rather than failing
    - Only LedgerConnectionError triggers a retry; any other exception propagates unchanged

Design Decisions:
    - Wrapper over the raw client: isolates retry policy from services
    - Backoff sleeps go through the injected Clock so retries run on virtual time in tests
"""

import logging
import random

from trustlend.core.errors import LedgerConnectionError
from trustlend.infrastructure.clock import Clock, SystemClock
from trustlend.infrastructure.ledger_gateway import (
    AccountCredentials,
    FundingStatus,
    LedgerCredential,
    LedgerGateway,
    PaymentReceipt,
)

logger = logging.getLogger(__name__)


class ResilientLedgerGateway:
    """LedgerGateway decorator adding retry policies."""

    def __init__(
        self,
        inner: LedgerGateway,
        *,
        clock: Clock | None = None,
        max_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 5_000,
        funding_attempts: int = 5,
        funding_backoff_ms: int = 2_000,
    ):
        self.inner = inner
        self.clock = clock or SystemClock()
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.funding_attempts = funding_attempts
        self.funding_backoff_ms = funding_backoff_ms

    @property
    def is_connected(self) -> bool:
        return self.inner.is_connected

    async def connect(self) -> None:
        await self.inner.connect()

    async def disconnect(self) -> None:
        await self.inner.disconnect()

    async def get_account_balance(self, address: str) -> str:
        for attempt in range(self.max_retries + 1):
            try:
                return await self.inner.get_account_balance(address)
            except LedgerConnectionError as e:
                await self._handle_transient_error(e, attempt, address)
        raise AssertionError("unreachable")  # pragma: no cover

    async def check_and_update_funding(self, address: str) -> FundingStatus:
        for attempt in range(self.max_retries + 1):
            try:
                return await self.inner.check_and_update_funding(address)
            except LedgerConnectionError as e:
                await self._handle_transient_error(e, attempt, address)
        raise AssertionError("unreachable")  # pragma: no cover

    async def send_payment(
        self, credential: LedgerCredential, to_address: str, amount: float,
    ) -> PaymentReceipt:
        return await self.inner.send_payment(credential, to_address, amount)

    async def fund_account(self, address: str) -> str:
        return await self.inner.fund_account(address)

    async def create_account(self, label: str) -> AccountCredentials:
        """Create an account, then fund it best-effort within the attempt budget."""
        account = await self.inner.create_account(label)
        for attempt in range(1, self.funding_attempts + 1):
            try:
                await self.inner.fund_account(account.address)
                status = await self.inner.check_and_update_funding(account.address)
            except LedgerConnectionError as e:
                logger.warning(
                    f"Funding attempt failed: {e}",
                    extra={"address": account.address, "attempt": attempt},
                )
            else:
                account.balance = status.balance
                if status.is_funded:
                    account.needs_funding = False
                    logger.info(
                        f"Account funded with {status.balance}",
                        extra={"address": account.address, "attempt": attempt},
                    )
                    return account
            if attempt < self.funding_attempts:
                await self.clock.sleep(self.funding_backoff_ms / 1000)
        account.needs_funding = True
        logger.warning(
            f"Account still unfunded after {self.funding_attempts} attempts",
            extra={"address": account.address},
        )
        return account

    async def _handle_transient_error(
        self, e: LedgerConnectionError, attempt: int, address: str,
    ) -> None:
        """Sleep before the next attempt, or re-raise once the budget is spent."""
        if attempt >= self.max_retries:
            e.context.retry_after_ms = e.context.retry_after_ms or self.max_delay_ms
            logger.error(
                f"Ledger unavailable after {self.max_retries} retries: {e}",
                extra={"address": address, "error_code": e.code},
            )
            raise e
        delay = self._backoff(attempt)
        logger.warning(
            f"Transient ledger error, retry after {delay}ms: {e}",
            extra={"address": address, "attempt": attempt + 1},
        )
        await self.clock.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311
