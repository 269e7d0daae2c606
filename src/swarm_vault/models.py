"""Transaction and target records plus the aggregate status rules."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionStatus(str, Enum):
    """Aggregate status of one dispatch. Always derived from its targets."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TargetStatus(str, Enum):
    """Per-member status."""
    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TargetStatus.CONFIRMED, TargetStatus.FAILED)


# Targets only move forward
_ALLOWED_TRANSITIONS: dict[TargetStatus, frozenset[TargetStatus]] = {
    TargetStatus.PENDING: frozenset({TargetStatus.SUBMITTED, TargetStatus.FAILED}),
    TargetStatus.SUBMITTED: frozenset({TargetStatus.CONFIRMED, TargetStatus.FAILED}),
    TargetStatus.CONFIRMED: frozenset(),
    TargetStatus.FAILED: frozenset(),
}


def can_transition(current: TargetStatus, new: TargetStatus) -> bool:
    return new == current or new in _ALLOWED_TRANSITIONS[current]


class TransactionKind(str, Enum):
    TEMPLATE = "template"  # calls resolved from a placeholder template
    PREPARED = "prepared"  # calls supplied per member (e.g. swap quotes)


@dataclass(frozen=True)
class ResolvedCall:
    """A concrete call for one wallet."""
    to: str
    data: str
    value: int = 0

    def to_dict(self) -> dict[str, str]:
        return {"to": self.to, "data": self.data, "value": str(self.value)}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ResolvedCall":
        return cls(
            to=payload["to"],
            data=payload.get("data") or "0x",
            value=int(payload.get("value") or 0),
        )


@dataclass(frozen=True)
class Member:
    """One wallet targeted by a dispatch."""
    member_id: str
    wallet_address: str
    # Delegated-signer key authorized for this member's account
    key_handle: Optional[str] = None


@dataclass(frozen=True)
class PreparedMemberCalls:
    """Concrete calls for one member, produced outside the template path."""
    member: Member
    calls: tuple[ResolvedCall, ...] = ()
    error: Optional[str] = None


@dataclass
class Transaction:
    transaction_id: str = field(default_factory=lambda: f"txn_{uuid.uuid4().hex[:20]}")
    kind: TransactionKind = TransactionKind.TEMPLATE
    template: dict[str, Any] = field(default_factory=dict)
    member_count: int = 0
    status: TransactionStatus = TransactionStatus.PENDING
    dispatch_finished: bool = False
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.transaction_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "template": self.template,
            "member_count": self.member_count,
            "dispatch_finished": self.dispatch_finished,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class TransactionTarget:
    transaction_id: str
    member_id: str
    wallet_address: str
    target_id: str = field(default_factory=lambda: f"tgt_{uuid.uuid4().hex[:20]}")
    calls: tuple[ResolvedCall, ...] = ()
    status: TargetStatus = TargetStatus.PENDING
    user_op_hash: Optional[str] = None
    chain_tx_hash: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def resolved_call(self) -> Optional[ResolvedCall]:
        return self.calls[0] if len(self.calls) == 1 else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.target_id,
            "transaction_id": self.transaction_id,
            "member_id": self.member_id,
            "wallet_address": self.wallet_address,
            "calls": [call.to_dict() for call in self.calls],
            "status": self.status.value,
            "user_op_hash": self.user_op_hash,
            "chain_tx_hash": self.chain_tx_hash,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def derive_transaction_status(
    target_statuses: Iterable[TargetStatus],
    dispatch_finished: bool,
) -> TransactionStatus:
    """Aggregate target statuses into the transaction status.

    While the dispatch is still creating targets the transaction cannot be
    final. Afterwards any non-terminal target keeps it PROCESSING, all
    CONFIRMED makes it COMPLETED, and anything else is FAILED.
    """
    statuses = list(target_statuses)

    if not dispatch_finished:
        return TransactionStatus.PROCESSING if statuses else TransactionStatus.PENDING
    if not statuses:
        return TransactionStatus.FAILED
    if any(not s.is_terminal for s in statuses):
        return TransactionStatus.PROCESSING
    if all(s is TargetStatus.CONFIRMED for s in statuses):
        return TransactionStatus.COMPLETED
    return TransactionStatus.FAILED


@dataclass
class TransactionStatusView:
    """A transaction with its targets, as returned to callers."""
    transaction: Transaction
    targets: list[TransactionTarget]

    @property
    def status(self) -> TransactionStatus:
        return self.transaction.status

    def count(self, status: TargetStatus) -> int:
        return sum(1 for t in self.targets if t.status is status)

    def to_dict(self) -> dict[str, Any]:
        payload = self.transaction.to_dict()
        payload["targets"] = [t.to_dict() for t in self.targets]
        payload["summary"] = {s.value: self.count(s) for s in TargetStatus}
        return payload
