"""Swarm vault execution engine.

Broadcasts one templated action across many member wallets, resolving each
wallet's parameters from its own on-chain state and authorizing every
operation through a delegated threshold signer.
"""

from .config import SwarmVaultSettings, ZeroBalancePolicy, get_settings
from .driver import ExecutionDriver
from .engine import SwarmEngine
from .exceptions import SwarmVaultError, TemplateValidationError
from .models import (
    Member,
    PreparedMemberCalls,
    ResolvedCall,
    TargetStatus,
    Transaction,
    TransactionStatus,
    TransactionStatusView,
    TransactionTarget,
    derive_transaction_status,
)
from .poller import ConfirmationPoller
from .store import InMemoryTransactionStore, TransactionStore

__version__ = "0.1.0"

__all__ = [
    "SwarmEngine",
    "ExecutionDriver",
    "ConfirmationPoller",
    "SwarmVaultSettings",
    "ZeroBalancePolicy",
    "get_settings",
    "SwarmVaultError",
    "TemplateValidationError",
    "Member",
    "PreparedMemberCalls",
    "ResolvedCall",
    "TargetStatus",
    "Transaction",
    "TransactionStatus",
    "TransactionStatusView",
    "TransactionTarget",
    "derive_transaction_status",
    "TransactionStore",
    "InMemoryTransactionStore",
]
