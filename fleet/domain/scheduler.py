"""Scheduler: decides run / wait / skip for every account, every cycle.

Each account goes Idle -> Evaluate -> {Run, Wait, Skip} independently.
Runs are admitted through a ConcurrencyGate so that no more than
``max_concurrent_sessions`` accounts are mid-flight at once. Failures are
contained at the account boundary.
"""

import asyncio
import random
import sys
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from fleet.config import AccountConfig, SchedulerConfig
from fleet.domain.models import RUN, SKIP, WAIT, ScheduleDecision
from fleet.domain.schedule import is_sleep_time, random_delay, seconds_until_wake
from fleet.infrastructure.context import RunContext
from fleet.infrastructure.gate import ConcurrencyGate
from fleet.infrastructure.lock import LockContentionError
from fleet.infrastructure.quota import QuotaTracker
from fleet.infrastructure.registry import SessionRegistry
from fleet.ports.outbound import ActionExecutionError, ActionOutcome, ActionSession, Notifier


def _log(msg: str):
    print(msg, file=sys.stderr)


class Scheduler:
    """Composes quota, registry and gate into per-account decisions."""

    def __init__(
        self,
        accounts: Sequence[AccountConfig],
        quota: QuotaTracker,
        registry: SessionRegistry,
        session: ActionSession,
        config: Optional[SchedulerConfig] = None,
        gate: Optional[ConcurrencyGate] = None,
        notifier: Optional[Notifier] = None,
        context: Optional[RunContext] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.accounts = list(accounts)
        self.config = config or SchedulerConfig()
        self._quota = quota
        self._registry = registry
        self._session = session
        self._gate = gate or ConcurrencyGate(self.config.max_concurrent_sessions)
        self._notifier = notifier
        self.context = context or RunContext()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.last_decisions: Dict[str, ScheduleDecision] = {}
        self.cycles = 0
        self._notify_tasks: set = set()

    @property
    def gate(self) -> ConcurrencyGate:
        return self._gate

    @property
    def notifier(self) -> Optional[Notifier]:
        return self._notifier

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def quota(self) -> QuotaTracker:
        return self._quota

    def find_account(self, account_id: str) -> Optional[AccountConfig]:
        for account in self.accounts:
            if account.account_id == account_id:
                return account
        return None

    # -- notifications (fire-and-forget) --

    def _notify(self, account_id: str, kind: str, detail: str):
        if self._notifier is None:
            return
        task = asyncio.ensure_future(self._safe_notify(account_id, kind, detail))
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_tasks.discard)

    async def _safe_notify(self, account_id: str, kind: str, detail: str):
        try:
            await self._notifier.notify(account_id, kind, detail)
        except Exception as e:
            _log(f"[{account_id}] notifier failed: {e}")

    async def drain_notifications(self):
        """Wait for in-flight notifications (used on shutdown and in tests)."""
        if self._notify_tasks:
            await asyncio.gather(*list(self._notify_tasks), return_exceptions=True)

    # -- quota helpers (blocking file I/O off the event loop) --

    async def _availability(self, account: AccountConfig) -> Dict[str, bool]:
        result = {}
        for action_type in account.enabled_action_types():
            result[action_type] = await asyncio.to_thread(
                self._quota.can_act, account.tracker_id, action_type, account.limit_for(action_type),
            )
        return result

    async def _min_wait(self, account: AccountConfig) -> float:
        waits = []
        for action_type in account.enabled_action_types():
            waits.append(await asyncio.to_thread(
                self._quota.time_until_available,
                account.tracker_id, action_type, account.limit_for(action_type),
            ))
        return min(waits) if waits else 0.0

    # -- Evaluate --

    async def _evaluate(self, account: AccountConfig) -> Tuple[ScheduleDecision, List[str]]:
        account_id = account.account_id
        if not account.enabled:
            return ScheduleDecision(account_id, SKIP, reason="account disabled"), []

        if is_sleep_time(account.sleep_start_hour, account.sleep_end_hour):
            if self._registry.has_session(account_id):
                await self._registry.close(account_id)
            wake = seconds_until_wake(account.sleep_start_hour, account.sleep_end_hour)
            return ScheduleDecision(account_id, SKIP, wait_seconds=wake, reason="sleep window"), []

        if not account.enabled_action_types():
            return ScheduleDecision(account_id, SKIP, reason="no enabled action types"), []

        availability = await self._availability(account)
        available = [t for t, ok in availability.items() if ok]
        if not available:
            wait = await self._min_wait(account)
            if self._registry.has_session(account_id):
                _log(f"[{account_id}] fully quota-blocked, closing warm session")
                await self._registry.close(account_id)
            _log(f"[{account_id}] limits reached, next action possible in ~{wait / 60:.0f} min")
            return ScheduleDecision(
                account_id, WAIT, wait_seconds=wait,
                reason="quota blocked: " + ", ".join(availability),
            ), []

        return ScheduleDecision(account_id, RUN, reason="available: " + ", ".join(available)), available

    async def evaluate(self, account: AccountConfig) -> ScheduleDecision:
        """Decide run / wait / skip for one account without running it."""
        decision, _ = await self._evaluate(account)
        return decision

    # -- Run --

    async def _remaining(self, account: AccountConfig, available: List[str]) -> Dict[str, int]:
        """Per-type budget left in the window; 0 for types not available now."""
        remaining = {t: 0 for t in account.limits}
        for action_type in available:
            count = await asyncio.to_thread(self._quota.recent_count, account.tracker_id, action_type)
            remaining[action_type] = max(0, account.limit_for(action_type) - count)
        return remaining

    async def _record(self, account: AccountConfig, outcome: ActionOutcome) -> bool:
        record = await asyncio.to_thread(
            self._quota.record_within_limit,
            account.tracker_id, outcome.action_type, account.limit_for(outcome.action_type),
        )
        if record is None:
            _log(f"[{account.account_id}] {outcome.action_type} over hourly limit, outcome not recorded")
            return False
        return True

    async def _execute(self, account: AccountConfig, available: List[str]) -> List[ActionOutcome]:
        account_id = account.account_id
        if self.context.exit_requested:
            return []
        handle = await self._registry.acquire(account)
        if self.context.exit_requested:
            return []

        behavior = {t: t in available for t in account.behavior}
        limits = await self._remaining(account, available)
        _log(f"[{account_id}] interacting with behavior {behavior}, remaining {limits}")
        try:
            outcomes = await self._session.perform_enabled_actions(
                handle.resource, behavior, limits, self.context,
            )
        except ActionExecutionError:
            raise
        except Exception as e:
            raise ActionExecutionError(f"{type(e).__name__}: {e}") from e

        recorded = []
        for outcome in outcomes or []:
            if outcome.success and await self._record(account, outcome):
                recorded.append(outcome)

        await self._apply_eviction(account)
        return recorded

    async def _apply_eviction(self, account: AccountConfig) -> bool:
        """Close the session only when fully blocked and slots are saturated."""
        availability = await self._availability(account)
        blocked = not any(availability.values())
        max_sessions = self.config.max_concurrent_sessions
        evicted = await self._registry.evict_if_idle(
            account.account_id,
            lambda _handle: blocked and self._registry.live_count >= max_sessions,
        )
        if evicted:
            _log(f"[{account.account_id}] evicted warm session (blocked, {max_sessions} slot(s) in use)")
        return evicted

    async def run_account(self, account: AccountConfig) -> ScheduleDecision:
        """One account's full cycle. Never raises (except on cancellation)."""
        account_id = account.account_id
        decision = ScheduleDecision(account_id, SKIP, reason="not evaluated")
        try:
            jitter = random_delay(0, self.config.jitter_max_seconds, self._rng)
            if jitter > 0:
                await self._sleep(jitter)
            if self.context.exit_requested:
                decision = ScheduleDecision(account_id, SKIP, reason="exit requested")
            else:
                decision, available = await self._evaluate(account)
                if decision.action == RUN:
                    outcomes = await self._gate.submit(self._execute, account, available)
                    done = len(outcomes)
                    decision.reason += f"; {done} action(s) recorded"
        except LockContentionError as e:
            _log(f"[{account_id}] lock contention: {e}")
            decision = ScheduleDecision(account_id, RUN, reason="session unavailable", error=str(e))
            self._notify(account_id, "lock_contention", str(e))
        except ActionExecutionError as e:
            _log(f"[{account_id}] action execution failed: {e}")
            decision = ScheduleDecision(account_id, RUN, reason="actions failed", error=str(e))
            self._notify(account_id, "action_error", str(e))
        except Exception as e:
            _log(f"[{account_id}] unexpected error: {type(e).__name__}: {e}")
            decision = ScheduleDecision(account_id, decision.action, reason="unexpected error", error=str(e))
            self._notify(account_id, "unexpected", f"{type(e).__name__}: {e}")
        self.last_decisions[account_id] = decision
        return decision

    # -- cycles --

    async def run_cycle(self) -> List[ScheduleDecision]:
        """Evaluate (and run where allowed) every account concurrently."""
        self.cycles += 1
        return list(await asyncio.gather(*(self.run_account(a) for a in self.accounts)))

    async def run_forever(self):
        """Repeat cycles until an exit is requested, then release sessions."""
        _log(f"Scheduler started: {len(self.accounts)} account(s), "
             f"max {self.config.max_concurrent_sessions} concurrent session(s)")
        try:
            while not self.context.exit_requested:
                decisions = await self.run_cycle()
                counts = {RUN: 0, WAIT: 0, SKIP: 0}
                for d in decisions:
                    counts[d.action] = counts.get(d.action, 0) + 1
                _log(f"Cycle {self.cycles} finished: {counts[RUN]} run, {counts[WAIT]} wait, "
                     f"{counts[SKIP]} skip; {self._registry.live_count} warm session(s)")
                if await self.context.sleep(self.config.cycle_interval_seconds):
                    break
        finally:
            _log(f"Scheduler stopping ({self.context.exit_reason or 'done'}), releasing sessions")
            await self._registry.release_all()
            await self.drain_notifications()
