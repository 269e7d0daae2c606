"""
Confirmation polling for submitted targets.

Features:
- Periodic sweep of SUBMITTED targets against the bundler
- CONFIRMED (with chain tx hash) or FAILED (reverted) resolution
- Stale-target timeout so one stuck operation cannot hold a transaction open
- Parent transaction status re-derivation after each sweep
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .config import PollerSettings
from .erc4337.service import BundlerService, OperationState
from .exceptions import InvalidStatusTransitionError, StageTimeoutError
from .logging_utils import log_target_event
from .models import TargetStatus, TransactionTarget
from .store import TransactionStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PollResult:
    """Outcome of one sweep."""
    checked: int = 0
    confirmed: int = 0
    failed: int = 0
    timed_out: int = 0
    errors: int = 0


class ConfirmationPoller:
    """Background task that resolves SUBMITTED targets."""

    def __init__(
        self,
        store: TransactionStore,
        bundler: BundlerService,
        settings: Optional[PollerSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._bundler = bundler
        self._settings = settings or PollerSettings()
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the poller."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop(), name="confirmation-poller")
        logger.info(
            "Confirmation poller started (interval=%ss)", self._settings.interval_seconds
        )

    async def stop(self) -> None:
        """Stop the poller."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Confirmation poller stopped")

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error("Error in confirmation poller: %s", e)

            await asyncio.sleep(self._settings.interval_seconds)

    def _is_stale(self, target: TransactionTarget) -> bool:
        limit = self._settings.target_timeout_seconds
        if limit <= 0:
            return False
        return (self._clock() - target.created_at).total_seconds() > limit

    async def _resolve(self, target: TransactionTarget, status: TargetStatus, **changes) -> bool:
        try:
            await self._store.update_target(target.target_id, status=status, **changes)
        except InvalidStatusTransitionError as e:
            # Another writer already resolved it
            logger.debug("Skipping target %s: %s", target.target_id, e)
            return False
        log_target_event(
            status.value,
            target.transaction_id,
            target.member_id,
            wallet_address=target.wallet_address,
            handle=changes.get("chain_tx_hash") or target.user_op_hash,
            error=changes.get("error"),
        )
        return True

    async def _expire(self, target: TransactionTarget, result: PollResult) -> bool:
        if not self._is_stale(target):
            return False
        limit = self._settings.target_timeout_seconds
        expired = await self._resolve(
            target,
            TargetStatus.FAILED,
            error=f"not confirmed within {limit:g}s (left {target.status.value})",
        )
        if expired:
            result.timed_out += 1
        return expired

    async def _check_target(self, target: TransactionTarget, result: PollResult) -> bool:
        """Query one target; returns True when its status changed."""
        result.checked += 1
        try:
            status = await asyncio.wait_for(
                self._bundler.get_status(target.user_op_hash),
                timeout=self._settings.status_timeout_seconds,
            )
        except asyncio.TimeoutError:
            result.errors += 1
            logger.warning(
                "Status check for target %s: %s",
                target.target_id,
                StageTimeoutError("bundler status", self._settings.status_timeout_seconds),
            )
            return await self._expire(target, result)
        except Exception as e:
            result.errors += 1
            logger.warning("Status check for target %s failed: %s", target.target_id, e)
            return await self._expire(target, result)

        if status.state is OperationState.INCLUDED:
            changed = await self._resolve(
                target, TargetStatus.CONFIRMED, chain_tx_hash=status.chain_tx_hash
            )
            result.confirmed += int(changed)
            return changed

        if status.state is OperationState.REVERTED:
            changed = await self._resolve(
                target,
                TargetStatus.FAILED,
                chain_tx_hash=status.chain_tx_hash,
                error=status.error or "User operation reverted",
            )
            result.failed += int(changed)
            return changed

        return await self._expire(target, result)

    async def poll_once(self) -> PollResult:
        """Run one sweep. Resolved targets are never touched again."""
        result = PollResult()
        affected: set[str] = set()

        for target in await self._store.list_targets(status=TargetStatus.SUBMITTED):
            if not target.user_op_hash:
                if await self._expire(target, result):
                    affected.add(target.transaction_id)
                continue
            if await self._check_target(target, result):
                affected.add(target.transaction_id)

        # PENDING targets belong to running dispatches unless they are stale
        for target in await self._store.list_targets(status=TargetStatus.PENDING):
            if await self._expire(target, result):
                affected.add(target.transaction_id)

        for transaction_id in affected:
            await self._store.refresh_transaction_status(transaction_id)

        if result.checked or affected:
            logger.info(
                "Poll sweep: checked=%d confirmed=%d failed=%d timed_out=%d errors=%d",
                result.checked, result.confirmed, result.failed,
                result.timed_out, result.errors,
            )
        return result
