"""Tests for record models and aggregate status derivation."""
from __future__ import annotations

import pytest

from swarm_vault.models import (
    ResolvedCall,
    TargetStatus,
    Transaction,
    TransactionStatus,
    TransactionStatusView,
    TransactionTarget,
    can_transition,
    derive_transaction_status,
)

from engine_fakes import TOKEN, WALLET_1

P, S, C, F = (
    TargetStatus.PENDING,
    TargetStatus.SUBMITTED,
    TargetStatus.CONFIRMED,
    TargetStatus.FAILED,
)


class TestDeriveStatus:

    @pytest.mark.parametrize(
        "statuses,finished,expected",
        [
            ([], False, TransactionStatus.PENDING),
            ([C, C], False, TransactionStatus.PROCESSING),
            ([F], False, TransactionStatus.PROCESSING),
            ([], True, TransactionStatus.FAILED),
            ([C, C, C], True, TransactionStatus.COMPLETED),
            ([C, S], True, TransactionStatus.PROCESSING),
            ([C, P], True, TransactionStatus.PROCESSING),
            ([F, S], True, TransactionStatus.PROCESSING),
            ([C, F], True, TransactionStatus.FAILED),
            ([F, F], True, TransactionStatus.FAILED),
        ],
    )
    def test_derivation(self, statuses, finished, expected):
        assert derive_transaction_status(statuses, finished) is expected


class TestTransitions:

    @pytest.mark.parametrize(
        "current,new,allowed",
        [
            (P, S, True),
            (P, F, True),
            (S, C, True),
            (S, F, True),
            (S, S, True),
            (S, P, False),
            (C, F, False),
            (F, S, False),
            (P, C, False),
        ],
    )
    def test_forward_only(self, current, new, allowed):
        assert can_transition(current, new) is allowed

    def test_terminal(self):
        assert C.is_terminal and F.is_terminal
        assert not P.is_terminal and not S.is_terminal


class TestRecords:

    def test_resolved_call_dict(self):
        call = ResolvedCall(to=TOKEN, data="0xabcd", value=10**20)
        payload = call.to_dict()
        assert payload["value"] == "100000000000000000000"
        assert ResolvedCall.from_dict(payload) == call

    def test_identifiers(self):
        txn = Transaction()
        target = TransactionTarget(txn.transaction_id, "m1", WALLET_1)
        assert txn.transaction_id.startswith("txn_")
        assert target.target_id.startswith("tgt_")
        assert target.resolved_call is None

    def test_status_view_summary(self):
        txn = Transaction(status=TransactionStatus.PROCESSING)
        targets = [
            TransactionTarget(txn.transaction_id, "m1", WALLET_1, status=C),
            TransactionTarget(txn.transaction_id, "m2", WALLET_1, status=S),
            TransactionTarget(txn.transaction_id, "m3", WALLET_1, status=S),
        ]
        view = TransactionStatusView(txn, targets)
        payload = view.to_dict()
        assert view.count(S) == 2
        assert payload["status"] == "processing"
        assert payload["summary"] == {"pending": 0, "submitted": 2, "confirmed": 1, "failed": 0}
        assert len(payload["targets"]) == 3
