"""Repayment Scheduler — one-shot deferred repayment per loan, on the cooperative event loop.

Invariants:
    - At most one SchedulerEntry per loan id (DuplicateScheduleError otherwise)
    - claim() checks and clears is_active with no await in between — exactly one caller
      (timer fire or manual path) ever proceeds for a given activation
    - A fired entry whose claim fails is a no-op: no ledger call, no transition
    - Past-due loans are queued as a new task, never executed inside schedule()
    - Entries are never retried after a claimed execution, whatever its outcome

Design Decisions:
    - Timers are asyncio tasks awaiting Clock.sleep, so a VirtualClock drives them in tests
    - cancel() only flips is_active; an armed timer still wakes and observes the flag
    - The flag is sufficient because everything runs on one event loop; a threaded
      variant would need a per-loan lock around claim()
    - No durable queue: shutdown() drops armed timers (restart loses pending repayments)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from trustlend.core.domain_types import RepaymentTrigger
from trustlend.core.errors import DuplicateScheduleError, LoanNotFoundError
from trustlend.core.outcomes import LoanOutcome
from trustlend.infrastructure.clock import Clock
from trustlend.infrastructure.ledger_gateway import LedgerCredential

logger = logging.getLogger(__name__)

RepaymentExecutorFn = Callable[
    [str, LedgerCredential, RepaymentTrigger], Awaitable[LoanOutcome],
]


@dataclass
class SchedulerEntry:
    loan_id: str
    execute_at: float
    credential: LedgerCredential
    is_active: bool = True
    claimed_at: float | None = None

    def to_dict(self) -> dict:
        return {
            "loan_id": self.loan_id,
            "execute_at": self.execute_at,
            "is_active": self.is_active,
            "claimed_at": self.claimed_at,
        }


class RepaymentScheduler:
    def __init__(self, clock: Clock, executor: RepaymentExecutorFn):
        self._clock = clock
        self._executor = executor
        self._entries: dict[str, SchedulerEntry] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._executions: set[asyncio.Task] = set()

    # --- Registration -----------------------------------------------------------

    def schedule(
        self, loan_id: str, execute_at: float, credential: LedgerCredential,
    ) -> SchedulerEntry:
        if loan_id in self._entries:
            raise DuplicateScheduleError(loan_id)
        entry = SchedulerEntry(loan_id, execute_at, credential)
        self._entries[loan_id] = entry
        self._arm(entry)
        return entry

    def get_entry(self, loan_id: str) -> SchedulerEntry | None:
        return self._entries.get(loan_id)

    def pending_entries(self) -> list[SchedulerEntry]:
        return [e for e in self._entries.values() if e.is_active]

    # --- Claiming ---------------------------------------------------------------

    def claim(self, loan_id: str) -> SchedulerEntry | None:
        """Atomically deactivate the entry. Returns it only to the first caller."""
        entry = self._entries.get(loan_id)
        if entry is None or not entry.is_active:
            return None
        entry.is_active = False
        entry.claimed_at = self._clock.now()
        return entry

    def cancel(self, loan_id: str) -> bool:
        """Clear is_active ahead of the timer. True iff this call did the clearing."""
        cleared = self.claim(loan_id) is not None
        if cleared:
            logger.info("Scheduled repayment cleared", extra={"loan_id": loan_id})
        return cleared

    def reinstate(self, loan_id: str) -> SchedulerEntry:
        """Re-activate a cleared entry, re-arming its timer if it already woke."""
        entry = self._entries.get(loan_id)
        if entry is None:
            raise LoanNotFoundError(loan_id)
        if entry.is_active:
            return entry
        entry.is_active = True
        entry.claimed_at = None
        timer = self._timers.get(loan_id)
        if timer is None or timer.done():
            self._arm(entry)
        logger.info("Scheduled repayment reinstated", extra={"loan_id": loan_id})
        return entry

    # --- Execution --------------------------------------------------------------

    async def fire(
        self, loan_id: str, trigger: RepaymentTrigger = RepaymentTrigger.SCHEDULED,
    ) -> LoanOutcome | None:
        """Run the repayment if the entry is still active; otherwise no-op."""
        entry = self.claim(loan_id)
        if entry is None:
            logger.info(
                "Repayment already handled, timer is a no-op",
                extra={"loan_id": loan_id, "trigger": trigger.value},
            )
            return None
        logger.info(
            "Executing repayment", extra={"loan_id": loan_id, "trigger": trigger.value},
        )
        try:
            return await self._executor(loan_id, entry.credential, trigger)
        except Exception as e:
            logger.error(
                f"Repayment executor raised: {e}", exc_info=True,
                extra={"loan_id": loan_id},
            )
            return None

    async def drain(self) -> None:
        """Wait until every in-flight repayment execution has finished."""
        while self._executions:
            await asyncio.gather(*list(self._executions), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.drain()
        lost = [loan_id for loan_id, t in self._timers.items() if not t.done()]
        if lost:
            logger.warning(
                f"Dropping {len(lost)} armed repayment timer(s) on shutdown",
            )
        for task in list(self._timers.values()):
            task.cancel()
        await asyncio.gather(*list(self._timers.values()), return_exceptions=True)
        self._timers.clear()

    # --- Internals --------------------------------------------------------------

    def _arm(self, entry: SchedulerEntry) -> None:
        delay = entry.execute_at - self._clock.now()
        if delay <= 0:
            logger.info("Repayment past due, queued now", extra={"loan_id": entry.loan_id})
            self._spawn_fire(entry.loan_id)
            return
        task = asyncio.create_task(
            self._run_timer(entry.loan_id, entry.execute_at),
            name=f"repayment-timer-{entry.loan_id}",
        )
        self._timers[entry.loan_id] = task
        task.add_done_callback(lambda t, loan_id=entry.loan_id: self._forget_timer(loan_id, t))
        logger.info(
            f"Repayment scheduled in {delay:.1f}s", extra={"loan_id": entry.loan_id},
        )

    async def _run_timer(self, loan_id: str, execute_at: float) -> None:
        # remaining time is measured when the task first runs, not when it was created
        await self._clock.sleep(execute_at - self._clock.now())
        self._spawn_fire(loan_id)

    def _spawn_fire(self, loan_id: str) -> None:
        task = asyncio.create_task(self.fire(loan_id), name=f"repayment-{loan_id}")
        self._executions.add(task)
        task.add_done_callback(self._executions.discard)

    def _forget_timer(self, loan_id: str, task: asyncio.Task) -> None:
        if self._timers.get(loan_id) is task:
            del self._timers[loan_id]
