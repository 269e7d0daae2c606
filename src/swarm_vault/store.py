"""Persistence for transactions and their per-member targets."""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, List

from .exceptions import InvalidStatusTransitionError, NotFoundError
from .models import (
    TargetStatus,
    Transaction,
    TransactionStatus,
    TransactionTarget,
    can_transition,
    derive_transaction_status,
)


class TransactionStore(ABC):
    """Storage interface used by the execution driver and the poller.

    Implementations must serialize each operation and reject target status
    changes that move backwards.
    """

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction: ...

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]: ...

    @abstractmethod
    async def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Transaction]: ...

    @abstractmethod
    async def mark_dispatch_finished(self, transaction_id: str) -> Transaction: ...

    @abstractmethod
    async def refresh_transaction_status(self, transaction_id: str) -> Transaction:
        """Re-derive the aggregate status from the current targets."""

    @abstractmethod
    async def create_target(self, target: TransactionTarget) -> TransactionTarget: ...

    @abstractmethod
    async def get_target(self, target_id: str) -> Optional[TransactionTarget]: ...

    @abstractmethod
    async def list_targets(
        self,
        transaction_id: Optional[str] = None,
        status: Optional[TargetStatus] = None,
    ) -> List[TransactionTarget]: ...

    @abstractmethod
    async def update_target(
        self,
        target_id: str,
        status: Optional[TargetStatus] = None,
        user_op_hash: Optional[str] = None,
        chain_tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> TransactionTarget:
        """Apply changes to a target.

        Raises:
            NotFoundError: unknown target.
            InvalidStatusTransitionError: the status would move backwards.
        """


class InMemoryTransactionStore(TransactionStore):
    """In-memory store (swap for a database in production).

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self):
        self._transactions: dict[str, Transaction] = {}
        self._targets: dict[str, TransactionTarget] = {}
        self._lock = asyncio.Lock()

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        async with self._lock:
            self._transactions[transaction.transaction_id] = replace(transaction)
            return replace(transaction)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        async with self._lock:
            txn = self._transactions.get(transaction_id)
            return replace(txn) if txn else None

    async def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Transaction]:
        async with self._lock:
            txns = list(self._transactions.values())
            if status is not None:
                txns = [t for t in txns if t.status == status]
            return [replace(t) for t in txns[offset : offset + limit]]

    def _require_transaction(self, transaction_id: str) -> Transaction:
        txn = self._transactions.get(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        return txn

    def _derive(self, txn: Transaction) -> None:
        statuses = [
            t.status for t in self._targets.values()
            if t.transaction_id == txn.transaction_id
        ]
        status = derive_transaction_status(statuses, txn.dispatch_finished)
        if status != txn.status:
            txn.status = status
            txn.updated_at = datetime.now(timezone.utc)

    async def mark_dispatch_finished(self, transaction_id: str) -> Transaction:
        async with self._lock:
            txn = self._require_transaction(transaction_id)
            txn.dispatch_finished = True
            txn.updated_at = datetime.now(timezone.utc)
            self._derive(txn)
            return replace(txn)

    async def refresh_transaction_status(self, transaction_id: str) -> Transaction:
        async with self._lock:
            txn = self._require_transaction(transaction_id)
            self._derive(txn)
            return replace(txn)

    async def create_target(self, target: TransactionTarget) -> TransactionTarget:
        async with self._lock:
            self._require_transaction(target.transaction_id)
            self._targets[target.target_id] = replace(target)
            return replace(target)

    async def get_target(self, target_id: str) -> Optional[TransactionTarget]:
        async with self._lock:
            target = self._targets.get(target_id)
            return replace(target) if target else None

    async def list_targets(
        self,
        transaction_id: Optional[str] = None,
        status: Optional[TargetStatus] = None,
    ) -> List[TransactionTarget]:
        async with self._lock:
            targets = list(self._targets.values())
            if transaction_id is not None:
                targets = [t for t in targets if t.transaction_id == transaction_id]
            if status is not None:
                targets = [t for t in targets if t.status == status]
            return [replace(t) for t in targets]

    async def update_target(
        self,
        target_id: str,
        status: Optional[TargetStatus] = None,
        user_op_hash: Optional[str] = None,
        chain_tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> TransactionTarget:
        async with self._lock:
            target = self._targets.get(target_id)
            if target is None:
                raise NotFoundError("TransactionTarget", target_id)
            if status is not None:
                if not can_transition(target.status, status):
                    raise InvalidStatusTransitionError(
                        target_id, target.status.value, status.value
                    )
                target.status = status
            if user_op_hash is not None:
                target.user_op_hash = user_op_hash
            if chain_tx_hash is not None:
                target.chain_tx_hash = chain_tx_hash
            if error is not None:
                target.error = error
            target.updated_at = datetime.now(timezone.utc)
            return replace(target)
